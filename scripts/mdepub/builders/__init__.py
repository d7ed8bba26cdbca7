from mdepub.builders.epub import EpubBuilder

__all__ = ["EpubBuilder"]
