"""
Event resolver registry.

A resolver decides whether a topic's new value constitutes a named event
("value became true", "value crossed 25 upwards", ...). Resolvers may name
a logical opposite; opposite links are computed once, when the registry is
frozen, and a dangling reference is reported instead of being created.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventContext:
    """
    Data handed to a resolver trigger.

    Attributes:
        value: New value of the topic
        previous: Previous value (from history), None if unknown
        action_value: Per-subscription parameter (e.g. a threshold)
    """

    value: Any
    previous: Any = None
    action_value: Any = None


Trigger = Callable[[EventContext], bool]


@dataclass(frozen=True)
class EventResolver:
    """A named event: allowed control kinds, trigger predicate, opposite name."""

    name: str
    allowed_kinds: FrozenSet[str]
    trigger: Trigger
    opposite_name: Optional[str] = None


# =============================================================================
# Built-in triggers
# =============================================================================


def when_change(ctx: EventContext) -> bool:
    return True


def when_enabled(ctx: EventContext) -> bool:
    return ctx.value is True


def when_disabled(ctx: EventContext) -> bool:
    return ctx.value is False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def when_cross_upper(ctx: EventContext) -> bool:
    """True at the moment the value rises above action_value."""
    if not _is_number(ctx.previous) or not _is_number(ctx.value):
        return False
    return ctx.value > ctx.action_value and ctx.previous <= ctx.action_value


def when_cross_lower(ctx: EventContext) -> bool:
    """True at the moment the value falls below action_value."""
    if not _is_number(ctx.previous) or not _is_number(ctx.value):
        return False
    return ctx.value < ctx.action_value and ctx.previous >= ctx.action_value


def while_value_higher_than_threshold(ctx: EventContext) -> bool:
    if not _is_number(ctx.value) or ctx.action_value is None:
        return False
    return ctx.value >= ctx.action_value


def while_value_lower_than_threshold(ctx: EventContext) -> bool:
    if not _is_number(ctx.value) or ctx.action_value is None:
        return False
    return ctx.value < ctx.action_value


# =============================================================================
# Registry
# =============================================================================


class EventResolverRegistry:
    """
    Lookup table of event resolvers.

    Entries are added with register() and become read-only after link(),
    which resolves every opposite_name into a direct reference.
    """

    def __init__(self, resolvers: Iterable[EventResolver] = ()) -> None:
        self._resolvers: Dict[str, EventResolver] = {}
        self._opposites: Dict[str, EventResolver] = {}
        self._linked = False
        for resolver in resolvers:
            self.register(resolver)

    def register(self, resolver: EventResolver) -> None:
        """
        Add a resolver.

        Raises:
            RuntimeError: If the registry was already linked
            ValueError: If a resolver with the same name exists
        """
        if self._linked:
            raise RuntimeError("Resolver registry is frozen, cannot register new resolvers")
        if resolver.name in self._resolvers:
            raise ValueError(f"Resolver {resolver.name} is already registered")
        self._resolvers[resolver.name] = resolver

    def link(self) -> "EventResolverRegistry":
        """
        Compute opposite links and freeze the registry.

        Returns:
            The registry itself, for chaining
        """
        for name, resolver in self._resolvers.items():
            if resolver.opposite_name is None:
                continue
            opposite = self._resolvers.get(resolver.opposite_name)
            if opposite is None:
                logger.warning(
                    f"Resolver {name} names opposite {resolver.opposite_name}, "
                    f"which is not registered; opposite left unlinked"
                )
                continue
            self._opposites[name] = opposite
        self._linked = True
        return self

    def resolve(self, name: str) -> Optional[EventResolver]:
        """Get a resolver by name, None if unknown."""
        return self._resolvers.get(name)

    def opposite_of(self, name: str) -> Optional[EventResolver]:
        """Get the linked opposite resolver, None if there is none."""
        return self._opposites.get(name)

    def is_kind_allowed(self, name: str, control_kind: Optional[str]) -> bool:
        """Check whether the resolver may be used with a control of this kind."""
        resolver = self._resolvers.get(name)
        if resolver is None:
            return False
        if not resolver.allowed_kinds:
            return True
        return control_kind in resolver.allowed_kinds

    def names(self) -> List[str]:
        return list(self._resolvers)

    def __contains__(self, name: object) -> bool:
        return name in self._resolvers


def build_default_registry() -> EventResolverRegistry:
    """Create and link the registry of built-in resolvers."""
    switch = frozenset({"switch"})
    value = frozenset({"value", "temperature"})
    return EventResolverRegistry(
        [
            EventResolver("whenChange", frozenset({"switch", "value"}), when_change),
            EventResolver("whenEnabled", switch, when_enabled, "whenDisabled"),
            EventResolver("whenDisabled", switch, when_disabled, "whenEnabled"),
            EventResolver("whenCrossUpper", value, when_cross_upper, "whenCrossLower"),
            EventResolver("whenCrossLower", value, when_cross_lower, "whenCrossUpper"),
            EventResolver(
                "whileValueHigherThanThreshold",
                value,
                while_value_higher_than_threshold,
                "whileValueLowerThanThreshold",
            ),
            EventResolver(
                "whileValueLowerThanThreshold",
                value,
                while_value_lower_than_threshold,
                "whileValueHigherThanThreshold",
            ),
        ]
    ).link()


DEFAULT_RESOLVERS = build_default_registry()
