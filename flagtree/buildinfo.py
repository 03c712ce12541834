"""
Flagtree build information (program name, version, platform and dependencies).

Scope
- program(): deterministic name for the running program.
- version(): version of the running program.
- read_build_info(): main distribution plus the installed distributions it requires,
  each with its replacement (direct-URL or editable install) when there is one.
- summary()/details(): the short and full version strings.
- render(): print either string to an output stream through rich.

Lookup order
- program: __main__.__prog__, then the stem of sys.argv[0] (".exe"/".py" stripped;
  a "__main__" launcher is mapped to the package run with "python -m").
- version: __main__.__version__, then the distribution owning the main module
  (found through the "-m" package name or the console_scripts entry point named
  like the program), then NOBUILDINFO.
"""
import json
import os.path
import platform
import re
import sys
from collections import deque, namedtuple
from importlib import metadata

from rich.text import Text

from .utils import console, palette, stylize

NOBUILDINFO = "no version available (not installed as a distribution)"

Module = namedtuple("Module", ("path", "version", "replace"), defaults=(None,))
BuildInfo = namedtuple("BuildInfo", ("main", "deps"))

# Leading project name of a PEP 508 requirement string.
_REQUIREMENT = re.compile(r"\s*([A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)")


def program():
    """
    Return a deterministic name for the running program.
    """
    main = sys.modules.get("__main__")
    if prog := getattr(main, "__prog__", None):
        return str(prog)

    name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else ""
    stem, extension = os.path.splitext(name)
    if extension.lower() in (".exe", ".py", ".pyw", ".pyz"):
        name = stem

    if name == "__main__":
        spec = getattr(main, "__spec__", None)
        if spec is not None and spec.parent:
            return spec.parent
    return name


def target():
    """
    Return "<os>/<arch>" for the running interpreter, e.g. "linux/x86_64".
    """
    return "%s/%s" % (platform.system().lower() or sys.platform, platform.machine().lower() or "unknown")


def _module(distribution):
    replace = None
    if source := distribution.read_text("direct_url.json"):
        try:
            origin = json.loads(source)
        except ValueError:
            origin = {}
        if url := origin.get("url"):
            if commit := origin.get("vcs_info", {}).get("commit_id"):
                replace = Module(url, commit)
            elif origin.get("dir_info", {}).get("editable"):
                replace = Module(url, "(devel)")
            else:
                replace = Module(url, "")
    return Module(distribution.metadata["Name"], distribution.version, replace)


def _main_distribution():
    main = sys.modules.get("__main__")
    packages = metadata.packages_distributions()

    spec = getattr(main, "__spec__", None)
    if spec is not None and spec.name:
        for name in packages.get(spec.name.partition(".")[0], ()):
            try:
                return metadata.distribution(name)
            except metadata.PackageNotFoundError:
                continue

    for entry in metadata.entry_points(group="console_scripts", name=program()):
        if entry.dist is not None:
            return entry.dist
    return None


def _requirements(distribution):
    for requirement in distribution.requires or ():
        requirement, _, marker = requirement.partition(";")
        # Optional extras are not part of the resolved build.
        if "extra" in marker:
            continue
        if match := _REQUIREMENT.match(requirement):
            yield match[1]


def _key(name):
    return re.sub(r"[-_.]+", "-", name).lower()


def _dependencies(distribution):
    """
    Yield the Module of every distribution required by `distribution`, directly or
    not, in discovery order (breadth first); each one is listed once.
    """
    seen = {_key(distribution.metadata["Name"])}
    pending = deque([distribution])
    while pending:
        for name in _requirements(pending.popleft()):
            if (key := _key(name)) in seen:
                continue
            seen.add(key)
            try:
                required = metadata.distribution(name)
            except metadata.PackageNotFoundError:
                continue
            pending.append(required)
            yield _module(required)


def read_build_info():
    """
    Return the BuildInfo of the running program, or None when it is not installed.
    """
    if (distribution := _main_distribution()) is None:
        return None
    return BuildInfo(_module(distribution), tuple(_dependencies(distribution)))


def version():
    """
    Return the version of the running program (NOBUILDINFO when unknown).
    """
    if (declared := getattr(sys.modules.get("__main__"), "__version__", None)) is not None:
        return str(declared)
    if info := read_build_info():
        return info.main.version
    return NOBUILDINFO


def _format(module):
    line = "%s %s" % (module.path, module.version)
    if module.replace is not None:
        line = "%s => %s" % (line, _format(module.replace))
    return line.rstrip()


def dependencies():
    """
    Return the dependency list: one line per distribution, main distribution first.
    """
    if (info := read_build_info()) is None:
        return NOBUILDINFO
    return "\n".join(map(_format, (info.main, *info.deps)))


def _fragments(full):
    """
    Return the version line as (fragment, palette key) pairs; summary(), details()
    and render() all assemble it from here.
    """
    fragments = [
        (program(), "program-name"),
        (" full version " if full else " version ", ""),
        (version(), "program-version"),
        (" ", ""),
        (target(), "platform"),
    ]
    if full:
        fragments += [
            (" compiled by %s (%s)\n" % (platform.python_implementation(), platform.python_version()), ""),
            (dependencies(), "dependencies"),
        ]
    return fragments


def summary():
    """
    "<program> version <version> <os>/<arch>"
    """
    return "".join(fragment for fragment, _ in _fragments(False))


def details():
    """
    "<program> full version <version> <os>/<arch> compiled by <implementation> (<python>)"
    followed by the dependency list.
    """
    return "".join(fragment for fragment, _ in _fragments(True))


def render(output, /, *, full=False, colorful=False):
    """
    Print the short (or full) version string to `output`.

    Palette keys: program-name, program-version, platform, dependencies
    (overridable through __main__.__styles__).
    """
    styles = palette({
        "program-name": "bold #FF4D94",  # Magenta-pink brand pop
        "program-version": "bold #00E6FF",  # Cyan version (clear contrast)
        "platform": "#9CA3AF",  # Neutral gray
        "dependencies": "#E5E7EB",
    })
    renderable = Text.assemble(*(
        stylize(fragment, styles[style], colorful) for fragment, style in _fragments(full)
    ))
    console(output, colorful=colorful).print(renderable)


__all__ = (
    "NOBUILDINFO",
    "Module",
    "BuildInfo",
    "program",
    "target",
    "read_build_info",
    "version",
    "dependencies",
    "summary",
    "details",
    "render",
)
