"""
Force-directed layout for knowledge graphs.

A small velocity-Verlet style integrator with the usual four forces:
link springs, many-body repulsion, centering and collision. Alpha ("temperature")
decays every tick so the layout settles instead of jittering forever.

Positions live in numpy arrays indexed by node, never on the GraphNode objects,
so the graph handed in stays untouched. `positions()` hands out copies.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from graphModel import KnowledgeGraph, SimulationStoppedError

logger = logging.getLogger(__name__)

# Defaults tuned for dashboard-sized graphs (<= a few hundred nodes)
LINK_DISTANCE = 100
CHARGE_STRENGTH = -300
COLLISION_RADIUS = 30
ALPHA_DECAY = 0.06
ALPHA_MIN = 0.001
VELOCITY_DECAY = 0.4
INITIAL_RADIUS = 10
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass
class NodePosition:
    x: float
    y: float
    fx: Optional[float] = None
    fy: Optional[float] = None

    @property
    def pinned(self):
        return self.fx is not None and self.fy is not None


class ForceSimulation:
    """
    One simulation instance per drawing surface. Call `stop()` before
    discarding it; a stopped simulation refuses further ticks.
    """

    def __init__(
        self,
        graph: KnowledgeGraph,
        width: float,
        height: float,
        link_distance: float = LINK_DISTANCE,
        charge_strength: float = CHARGE_STRENGTH,
        collision_radius: float = COLLISION_RADIUS,
        alpha_decay: float = ALPHA_DECAY,
        alpha_min: float = ALPHA_MIN,
        velocity_decay: float = VELOCITY_DECAY,
        seed: Optional[int] = 42,
    ):
        self.width = float(width)
        self.height = float(height)
        self.link_distance = link_distance
        self.charge_strength = charge_strength
        self.collision_radius = collision_radius
        self.alpha_decay = alpha_decay
        self.alpha_min = alpha_min
        self.velocity_decay = velocity_decay

        self.alpha = 1.0
        self.alpha_target = 0.0
        self.ticks = 0
        self._stopped = False
        self._rng = np.random.default_rng(seed)
        self._listeners: Dict[str, List[Callable]] = {"tick": [], "end": []}

        self.ids = [n.id for n in graph.nodes]
        self.index = {node_id: i for i, node_id in enumerate(self.ids)}
        n = len(self.ids)

        # Phyllotaxis seed layout around the viewport center
        i = np.arange(n, dtype=float)
        r = INITIAL_RADIUS * np.sqrt(0.5 + i)
        a = i * INITIAL_ANGLE
        self.pos = np.column_stack([
            self.width / 2 + r * np.cos(a),
            self.height / 2 + r * np.sin(a),
        ]) if n else np.zeros((0, 2))
        self.vel = np.zeros((n, 2))
        self.fixed = np.full((n, 2), np.nan)

        # Links resolved to index pairs; dangling ones never reach the arrays
        pairs = [
            (self.index[l.source], self.index[l.target])
            for l in graph.links
            if l.source in self.index and l.target in self.index and l.source != l.target
        ]
        self._src = np.array([p[0] for p in pairs], dtype=int)
        self._dst = np.array([p[1] for p in pairs], dtype=int)
        count = np.bincount(np.concatenate([self._src, self._dst]), minlength=n).astype(float)
        if len(pairs):
            cs, ct = count[self._src], count[self._dst]
            self._link_strength = 1.0 / np.minimum(cs, ct)
            self._link_bias = cs / (cs + ct)
        else:
            self._link_strength = np.zeros(0)
            self._link_bias = np.zeros(0)

        logger.debug(f"Simulation created: {n} nodes, {len(pairs)} links")

    # --- lifecycle ---
    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def settled(self) -> bool:
        return self.alpha < self.alpha_min

    def stop(self):
        if not self._stopped:
            logger.debug(f"Simulation stopped after {self.ticks} ticks")
        self._stopped = True
        return self

    def on(self, event: str, callback: Callable):
        """Register a 'tick' or 'end' listener."""
        if event not in self._listeners:
            raise ValueError(f"Unknown simulation event: {event}")
        self._listeners[event].append(callback)
        return self

    def reheat(self, alpha_target: float = 0.3):
        """Keep the simulation warm while a node is being dragged."""
        self.alpha_target = alpha_target
        if self.alpha < alpha_target:
            self.alpha = alpha_target
        return self

    def cool(self):
        self.alpha_target = 0.0
        return self

    # --- pinning ---
    def pin(self, node_id: str, x: float, y: float):
        i = self.index[node_id]
        self.fixed[i] = (x, y)
        self.pos[i] = (x, y)
        self.vel[i] = 0.0
        return self

    def unpin(self, node_id: str):
        self.fixed[self.index[node_id]] = np.nan
        return self

    def drag(self, node_id: str, x: float, y: float):
        """Drag start/move: pin the node under the pointer."""
        self.reheat()
        return self.pin(node_id, x, y)

    def release(self, node_id: str):
        """Drag end: hand the node back to the simulation."""
        self.cool()
        return self.unpin(node_id)

    # --- integration ---
    def tick(self, iterations: int = 1):
        if self._stopped:
            raise SimulationStoppedError("Cannot tick a stopped simulation")
        for _ in range(iterations):
            self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
            if len(self.ids):
                self._apply_link_force()
                self._apply_charge_force()
                self._apply_center_force()
                self._apply_collision_force()
                self.vel *= (1 - self.velocity_decay)
                self.pos += self.vel
                pinned = ~np.isnan(self.fixed[:, 0])
                self.pos[pinned] = self.fixed[pinned]
                self.vel[pinned] = 0.0
            self.ticks += 1
            for callback in self._listeners["tick"]:
                callback(self)
        return self

    def run(self, max_ticks: int = 300) -> int:
        """Tick until alpha drops under alpha_min (or max_ticks). Returns ticks run."""
        ran = 0
        while not self._stopped and not self.settled and ran < max_ticks:
            self.tick()
            ran += 1
        if self.settled:
            for callback in self._listeners["end"]:
                callback(self)
        return ran

    def _jiggle(self, shape):
        return (self._rng.random(shape) - 0.5) * 1e-6

    def _apply_link_force(self):
        if not len(self._src):
            return
        s, t = self._src, self._dst
        delta = (self.pos[t] + self.vel[t]) - (self.pos[s] + self.vel[s])
        zero = ~np.any(delta, axis=1)
        if zero.any():
            delta[zero] = self._jiggle((int(zero.sum()), 2))
        length = np.linalg.norm(delta, axis=1)
        scale = (length - self.link_distance) / length * self.alpha * self._link_strength
        delta *= scale[:, None]
        np.add.at(self.vel, t, -delta * self._link_bias[:, None])
        np.add.at(self.vel, s, delta * (1 - self._link_bias)[:, None])

    def _apply_charge_force(self):
        n = len(self.ids)
        if n < 2:
            return
        diff = self.pos[None, :, :] - self.pos[:, None, :]  # diff[i, j] = pos_j - pos_i
        dist2 = np.sum(diff ** 2, axis=2)
        np.fill_diagonal(dist2, np.inf)
        # Clamp very small distances so coincident nodes do not explode
        dist2 = np.maximum(dist2, 1.0)
        weight = self.charge_strength * self.alpha / dist2
        self.vel += np.sum(diff * weight[:, :, None], axis=1)

    def _apply_center_force(self):
        shift = self.pos.mean(axis=0) - (self.width / 2, self.height / 2)
        self.pos -= shift

    def _apply_collision_force(self):
        n = len(self.ids)
        if n < 2 or self.collision_radius <= 0:
            return
        nxt = self.pos + self.vel
        diff = nxt[:, None, :] - nxt[None, :, :]  # diff[i, j] = i - j
        dist = np.linalg.norm(diff, axis=2)
        min_dist = 2 * self.collision_radius
        overlap = (dist < min_dist) & ~np.eye(n, dtype=bool)
        if not overlap.any():
            return
        safe = np.where(dist > 0, dist, 1.0)
        push = np.where(overlap, (min_dist - dist) / safe, 0.0) * 0.5
        self.vel += np.sum(diff * push[:, :, None], axis=1)

    # --- results ---
    def positions(self) -> Dict[str, NodePosition]:
        out = {}
        for node_id, i in self.index.items():
            fx, fy = self.fixed[i]
            out[node_id] = NodePosition(
                x=float(self.pos[i, 0]),
                y=float(self.pos[i, 1]),
                fx=None if np.isnan(fx) else float(fx),
                fy=None if np.isnan(fy) else float(fy),
            )
        return out

    def position_of(self, node_id: str) -> Optional[NodePosition]:
        if node_id not in self.index:
            return None
        return self.positions()[node_id]
