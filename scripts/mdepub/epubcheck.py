"""
EPUB validation via epubcheck.

Locates epubcheck (env var, PATH, tools/ dir, or ~/), runs it on a
finished book, and parses the output summary.
"""

import logging
import os
import re
import shutil
import subprocess

logger = logging.getLogger(__name__)

SUMMARY_RE = re.compile(
    r"Messages:\s*(\d+)\s*fatal.*?(\d+)\s*error.*?(\d+)\s*warn",
    re.IGNORECASE | re.DOTALL,
)
MESSAGE_PREFIXES = ("FATAL", "ERROR", "WARNING")


class EpubcheckResult:
    """Outcome of one epubcheck run."""

    def __init__(self, returncode, fatals=0, errors=0, warnings=0, messages=None):
        self.returncode = returncode
        self.fatals = fatals
        self.errors = errors
        self.warnings = warnings
        self.messages = messages or []

    @property
    def valid(self):
        return self.returncode == 0 and self.fatals == 0 and self.errors == 0


def find_epubcheck():
    """
    Locate epubcheck. Checks in order:
        1. EPUBCHECK_JAR environment variable
        2. epubcheck command on PATH (brew/apt install)
        3. tools/epubcheck*/epubcheck.jar (relative to project root)
        4. ~/epubcheck*/epubcheck.jar

    Returns: (mode, path) where mode is 'jar' or 'cmd', or (None, None).
    """
    env_jar = os.environ.get("EPUBCHECK_JAR")
    if env_jar and os.path.exists(env_jar):
        return ("jar", env_jar)

    if shutil.which("epubcheck"):
        return ("cmd", "epubcheck")

    # scripts/mdepub/ → scripts/ → project root
    package_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(os.path.dirname(package_dir))

    for search_root in [
        os.path.join(project_root, "tools"),
        os.path.expanduser("~"),
    ]:
        if not os.path.isdir(search_root):
            continue
        for entry in sorted(os.listdir(search_root), reverse=True):
            if entry.startswith("epubcheck"):
                jar = os.path.join(search_root, entry, "epubcheck.jar")
                if os.path.exists(jar):
                    return ("jar", jar)

    return (None, None)


def parse_output(returncode, output):
    """Turn raw epubcheck output into an EpubcheckResult."""
    messages = [
        line for line in output.splitlines()
        if line.startswith(MESSAGE_PREFIXES)
    ]
    summary = SUMMARY_RE.search(output)
    if not summary:
        return EpubcheckResult(returncode, messages=messages)

    fatals, errors, warnings = (int(n) for n in summary.groups())
    return EpubcheckResult(returncode, fatals, errors, warnings, messages)


def validate_epub(epub_path, verbose=False):
    """
    Run epubcheck on an epub file.

    Returns: EpubcheckResult, or None if epubcheck is unavailable.
    """
    mode, path = find_epubcheck()
    if mode is None:
        logger.info("Skipping validation: epubcheck not found")
        return None

    cmd = ["java", "-jar", path, epub_path] if mode == "jar" else [path, epub_path]
    logger.debug("Running %s", " ".join(cmd))

    try:
        proc = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        logger.warning("Could not run epubcheck (java not found?)")
        return None

    result = parse_output(proc.returncode, proc.stdout + proc.stderr)

    if result.valid and result.warnings == 0:
        print("  ✓ epubcheck: valid (no errors, no warnings)")
    elif result.valid:
        print(f"  ⚠ epubcheck: valid with {result.warnings} warning(s)")
    else:
        print(
            f"  ✗ epubcheck: {result.fatals} fatal, {result.errors} error(s), "
            f"{result.warnings} warning(s)"
        )

    if verbose or not result.valid:
        for line in result.messages:
            print(f"    {line}")

    return result
