"""
Flagtree utilities (internal helpers, carefully exposed)

Scope
- Core building blocks shared by the flags, commands, faults and buildinfo layers.
- Public-but-internal leaning: stable enough for consumers, designed primarily
  to support the higher-level layers.

Overview
- UnsetType / Unset
  • Singleton sentinel to represent “value not provided” without conflating with None.
  • Falsey (bool(Unset) is False), printable as "Unset", and non-subclassable.

- coalesce(value, default=None)
  • Replace Unset with a concrete default, but preserve legitimate falsey values like None/0/""/[].

- rename(callable, name) / @rename("name")
  • Assign stable __name__/__qualname__ to generated wrappers for clean tracebacks.

- mirror("attr")
  • Read-only property factory exposing a private backing field (self._attr) with defensive copies
    for containers to discourage accidental mutation of public API state.

- IntrospectableType
  • Metaclass deriving __typename__, mirroring every __introspectable__ name and providing
    stable __repr__/__rich_repr__ implementations.

- console(file, colorful=False) / palette(defaults) / stylize(fragment, style, colorful)
  • Rendering helpers: a rich Console bound to an output stream that never interprets markup,
    a style mapping overridable from __main__.__styles__, and Text normalization.

Usage guidance
- Prefer Unset for API defaults when None is a meaningful user value; materialize with coalesce().
- Always hand user strings to the console as Text (see stylize()) so brackets are printed verbatim.
"""
import builtins
import functools
import operator
import re
from collections import defaultdict
from collections.abc import Sequence, Mapping, Set
from typing import final

from rich.console import Console
from rich.text import Text


@final
class UnsetType:
    """
    Internal sentinel type representing a value that was not provided.

    Characteristics
    - Boolean-false: bool(Unset) is False, but it is distinct from None and 0.
    - Printable: repr(Unset) -> "Unset" for friendly diagnostics.
    - Non-subclassable and singleton per process.
    """

    def __or__(self, other, /):
        """
        Support PEP 604 unions in isinstance checks (e.g., str | Unset).
        """
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()


def coalesce(object, default=None, /):
    """
    Resolve the Unset sentinel to a concrete default.

    Falsey values like None, 0, "" or [] are preserved as-is; only Unset is replaced.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - rename(callable, name) -> callable
    - rename(name) -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Recursively copy container values so callers cannot mutate the backing field.

    - Sequence (non-string): a new tuple with each element processed.
    - Mapping: a new dict with processed values (keys preserved).
    - Set: a new frozenset.
    - Anything else: returned as-is.
    """
    if isinstance(object, Sequence) and not isinstance(object, str | bytes):
        return tuple(map(_immortalize, object))
    elif isinstance(object, Mapping):
        return dict(zip(object.keys(), map(_immortalize, object.values())))
    elif isinstance(object, Set):
        return frozenset(map(_immortalize, object))
    return object


def mirror(name, /):
    """
    Define a read-only property that mirrors the private backing attribute "_{name}".
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


class IntrospectableType(type):
    """
    Metaclass for the public node types (flags and commands).

    Responsibilities
    - Derive __typename__ from the class name (camel-case split with hyphens) for
      consistent, human-friendly labels in messages.
    - Expose every name listed in __introspectable__ as a read-only property via mirror().
    - Provide compact __repr__ and structured __rich_repr__ implementations; the set of
      displayed names is __displayable__ when given, otherwise __introspectable__.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def console(file, /, *, colorful=False):
    """
    Build a rich Console writing to `file`.

    Markup, emoji and highlighting are disabled and soft wrapping is forced so the
    rendered text is byte-for-byte what the caller assembled. Colors are only
    emitted when `colorful` is True.
    """
    return Console(
        file=file,
        color_system="auto" if colorful else None,
        markup=False,
        emoji=False,
        highlight=False,
        soft_wrap=True,
    )


def palette(defaults, /):
    """
    Merge a renderer's default styles with the host overrides in __main__.__styles__.

    Unknown keys resolve to the empty style.
    """
    return defaultdict(str, defaults | getattr(__import__("__main__"), "__styles__", {}))


def stylize(fragment, style="", /, colorful=False):
    """
    Normalize any fragment to Text, applying `style` only when colorful.

    Existing Text instances keep their spans in colorful mode.
    """
    if fragment is None:
        return Text("")
    if not colorful:
        return Text(str(fragment))
    if isinstance(fragment, Text):
        return fragment
    return Text(str(fragment), style)


__all__ = (
    "UnsetType",
    "Unset",
    "coalesce",
    "rename",
    "mirror",
    "IntrospectableType",
    "console",
    "palette",
    "stylize",
)
