"""
Policy engine registry.

Engines register under a name; gates ask for one by name or, more often,
by whether the caller needs the snapshot or the strict path.

Usage:
    @AuthRegistry.policy_engine("strict")
    class StrictPolicyEngine(PolicyEngine):
        ...

    engine = AuthRegistry.engine_for(strict=True, db=db)
"""

from typing import Any, Callable, Type

from .interfaces import PolicyEngine

SNAPSHOT_ENGINE = "snapshot"
STRICT_ENGINE = "strict"


class AuthRegistry:
    _policy_engines: dict[str, Type[PolicyEngine]] = {}

    @classmethod
    def policy_engine(cls, name: str) -> Callable[[Type[PolicyEngine]], Type[PolicyEngine]]:
        """Class decorator registering an engine under ``name``."""
        def decorator(engine_class: Type[PolicyEngine]) -> Type[PolicyEngine]:
            engine_class.name = name
            cls._policy_engines[name] = engine_class
            return engine_class
        return decorator

    @classmethod
    def get_policy_engine(cls, name: str, **kwargs: Any) -> PolicyEngine:
        """
        Instantiate the engine registered under ``name``.

        Raises:
            ValueError: nothing is registered under that name
        """
        try:
            engine_class = cls._policy_engines[name]
        except KeyError:
            raise ValueError(
                f"Unknown policy engine '{name}', registered: {sorted(cls._policy_engines)}"
            ) from None
        return engine_class(**kwargs)

    @classmethod
    def engine_for(cls, strict: bool, **kwargs: Any) -> PolicyEngine:
        return cls.get_policy_engine(STRICT_ENGINE if strict else SNAPSHOT_ENGINE, **kwargs)

    @classmethod
    def has_policy_engine(cls, name: str) -> bool:
        return name in cls._policy_engines
