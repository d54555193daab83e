from __future__ import annotations

from collections.abc import Callable

from ..utils import debug, debug_helpers
from .config import CurveConfig, TessellationConfig
from .events import PackageEvent
from .graph import SpatialGraph
from .pipe_curves import PipeCurveBuilder, PipePolyline
from .provider import DataProvider, MetaInfo, SubscriptionToken
from .spatial import GeoPath, SpatialNode, build_tree
from .synthesizer import ObjectState, TrajectorySynthesizer


class TransportSession:
    """
    Binds a data provider to the curve builder and trajectory synthesizer.

    `bind` fetches the tree, builds the graph and pipe polylines, then
    subscribes to events. Everything is synchronous; the provider has
    already resolved any remote data by the time its methods return.
    """

    def __init__(
        self,
        curve_config: CurveConfig | None = None,
        tessellation: TessellationConfig | None = None,
    ) -> None:
        self.builder = PipeCurveBuilder(curve_config, tessellation)
        self.synthesizer = TrajectorySynthesizer(self.builder)
        self.meta: MetaInfo | None = None
        self.root: SpatialNode | None = None
        self.graph: SpatialGraph | None = None
        self.polylines: list[PipePolyline] = []
        self.selected: ObjectState | None = None
        self._provider: DataProvider | None = None
        self._token: SubscriptionToken | None = None

    def bind(self, provider: DataProvider) -> None:
        self.reset()
        self._provider = provider
        self.meta = provider.get_meta()
        self.root = build_tree(provider.get_spatial_subtree(self.meta.root_node_id))
        self.graph = SpatialGraph.from_tree(self.root)
        self.polylines = self.builder.polylines_for_tree(self.root)
        debug.log(
            f"bind: nodes={len(self.graph.in_dfs_order())} arrows={len(self.graph.arrows)} "
            f"polylines={len(self.polylines)}"
        )
        self.synthesizer.prepare(self.meta.start_time, self.graph)
        self._token = provider.subscribe(self.on_event)

    def reset(self) -> None:
        if self._provider is not None and self._token is not None:
            self._provider.unsubscribe(self._token)
        self._provider = None
        self._token = None
        self.synthesizer.reset()
        self.builder.clear()
        self.meta = None
        self.root = None
        self.graph = None
        self.polylines = []
        self.selected = None
        debug_helpers.clear_seen()

    def on_event(self, event: PackageEvent) -> None:
        if not self.synthesizer.is_prepared:
            raise RuntimeError("bind() must be called before on_event()")
        self.synthesizer.on_event(event)

    def packages(self) -> list[ObjectState]:
        return self.synthesizer.states()

    def select_package(self, predicate: Callable[[ObjectState], bool]) -> ObjectState | None:
        matches = [state for state in self.packages() if predicate(state)]
        self.selected = matches[0] if matches else None
        return self.selected

    def find_path(self, from_node_id: int, to_node_id: int) -> GeoPath | None:
        if self.graph is None:
            return None
        return self.graph.find_geo_path(from_node_id, to_node_id)
