"""
Per-route fee controllers.
"""

import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from shared.errors import ConfigurationError, RouteNotFoundError
from shared.logging import bind_route, get_logger
from shared.metrics import MetricsCollector
from .config import FeeControllerConfig
from .fee_controller import FeeController, FeeMetrics
from .money import Price


class PricingRegistry:
    """Owns one ``FeeController`` per protected route.

    The registry lock only guards the route table. Quotes take the lock of the
    route's own controller, so traffic on one route never waits on another.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.collector = metrics
        self.logger = get_logger("pricing.registry")
        self._controllers: Dict[str, FeeController] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_route_configs(
        cls,
        configs: Mapping[str, FeeControllerConfig],
        now_ms: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "PricingRegistry":
        registry = cls(metrics=metrics)
        for route, config in configs.items():
            registry.register(route, config, now_ms=now_ms)
        return registry

    def register(
        self,
        route: str,
        config: Optional[Union[FeeControllerConfig, Mapping[str, Any]]] = None,
        now_ms: Optional[int] = None,
    ) -> FeeController:
        """Create the controller for ``route``. Registering a route twice is an error."""
        with self._lock:
            if route in self._controllers:
                raise ConfigurationError(f"Route '{route}' is already registered", {"route": route})
            controller = FeeController(config, now_ms=now_ms, metrics=self.collector, route=route)
            self._controllers[route] = controller
        self.logger.info("Route pricing registered", route=route)
        return controller

    def get(self, route: str) -> FeeController:
        with self._lock:
            controller = self._controllers.get(route)
        if controller is None:
            raise RouteNotFoundError(route)
        return controller

    def routes(self) -> List[str]:
        with self._lock:
            return sorted(self._controllers)

    def __contains__(self, route: object) -> bool:
        with self._lock:
            return route in self._controllers

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    def quote(self, route: str, now_ms: Optional[int] = None) -> Price:
        """Price one request to ``route``."""
        try:
            controller = self.get(route)
        except RouteNotFoundError as e:
            self.logger.warning("Quote requested for unknown route", route=route)
            if self.collector:
                self.collector.record_error(e.code)
            raise
        with bind_route(route):
            return controller.quote(now_ms)

    def metrics(self, now_ms: Optional[int] = None) -> Dict[str, FeeMetrics]:
        """Snapshot of every route, optionally evaluated at ``now_ms``."""
        with self._lock:
            controllers = dict(self._controllers)
        return {route: controller.metrics(now_ms) for route, controller in sorted(controllers.items())}

    def reset(self, route: Optional[str] = None, now_ms: Optional[int] = None) -> None:
        """Reset one route, or all of them when ``route`` is None."""
        if route is not None:
            self.get(route).reset(now_ms)
            return
        with self._lock:
            controllers = list(self._controllers.values())
        for controller in controllers:
            controller.reset(now_ms)
