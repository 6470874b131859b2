"""
Generic registry for pluggable components.

Selection policies and storage adapters register themselves here under the
name used in configuration, so the pipeline can look them up without
hard-coding the available implementations.
"""

from typing import Callable, Dict, Generic, List, Type, TypeVar

T = TypeVar("T")


class Registry(Generic[T]):
    """Name -> class registry validated against a common base class.

    Example:
        POLICY_REGISTRY = Registry(SelectionPolicy, "selection policy")

        @POLICY_REGISTRY.register_decorator("close")
        class ClosenessPolicy(SelectionPolicy):
            ...

        policy = POLICY_REGISTRY.get("close")
    """

    def __init__(self, base_class: Type[T], name: str):
        """Initialize the registry.

        Args:
            base_class: Class every registered item must subclass.
            name: Human-readable name used in error messages.
        """
        self._registry: Dict[str, Type[T]] = {}
        self._base = base_class
        self._name = name

    def register(self, key: str, cls: Type[T]) -> None:
        """Register a class under the given key.

        Raises:
            ValueError: If cls is not a subclass of the base class.
        """
        if not issubclass(cls, self._base):
            raise ValueError(f"{cls.__name__} must implement {self._base.__name__}")
        self._registry[key] = cls

    def get(self, key: str) -> T:
        """Instantiate the class registered under key.

        Raises:
            ValueError: If the key is not registered.
        """
        if key not in self._registry:
            available = list(self._registry.keys())
            raise ValueError(f"Unknown {self._name} '{key}'. Available: {available}")
        return self._registry[key]()

    def keys(self) -> List[str]:
        """Return all registered keys."""
        return list(self._registry.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._registry

    def register_decorator(self, key: str) -> Callable[[Type[T]], Type[T]]:
        """Return a decorator that registers the decorated class under key."""

        def decorator(cls: Type[T]) -> Type[T]:
            self.register(key, cls)
            return cls

        return decorator
