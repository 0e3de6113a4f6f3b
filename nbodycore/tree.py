"""
This module implements the octree used for approximate gravity and pruned
collision search.

Cells live in an arena (SpatialTree.cells) and refer to their children by
integer index, so a rebuild is a fresh list and nothing outlives it. Each root
box of the domain subdivides into eight children only when it would hold more
than one particle. Octant selection compares every axis with `>=` against the
cell centre, so a particle lying exactly on a dividing plane always goes to the
upper child. The root box of a particle is floor((x + B/2) / root_size)
clamped to the valid range, which puts a particle on the upper face of the
domain into the last root box. Periodic axes are wrapped on insertion and
particles outside a non-periodic box are left out. Below TREE_MAX_DEPTH a leaf
holds exactly one particle; exactly coincident particles that reach the cap
share one leaf bucket.

After insertion the multipole summaries (source mass, centre of mass and the
traceless quadrupole Q = sum m (3 d d^T - |d|^2 I)) are combined bottom-up.
Children are always appended after their parent, so a reverse sweep of the
arena visits every child before its parent. Only source particles (the ones
that attract others) carry mass in the summaries; every inserted particle is
still reachable from exactly one leaf, whose index is recorded in leaf_of.
"""

from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .constants import IntegratorConstants

logger = logging.getLogger(__name__)

_HALF_DIAGONAL = 0.5 * math.sqrt(3.0)


class TreeCell:
	__slots__ = ("center", "w", "depth", "children", "particles", "m", "com", "quad")

	def __init__(self, center: np.ndarray, w: float, depth: int) -> None:
		self.center = center
		self.w = float(w)
		self.depth = int(depth)
		self.children: Optional[List[int]] = None
		self.particles: List[int] = []
		self.m = 0.0
		self.com = center.copy()
		self.quad = np.zeros((3, 3))

	@property
	def is_leaf(self) -> bool:
		return self.children is None

	def contains(self, point: np.ndarray) -> bool:
		return bool(np.all(np.abs(point - self.center) <= 0.5 * self.w))

	def octant(self, point: np.ndarray) -> int:
		o = 0
		if point[0] >= self.center[0]:
			o |= 1
		if point[1] >= self.center[1]:
			o |= 2
		if point[2] >= self.center[2]:
			o |= 4
		return o

	def child_center(self, o: int) -> np.ndarray:
		q = 0.25 * self.w
		return self.center + np.array([
			q if o & 1 else -q,
			q if o & 2 else -q,
			q if o & 4 else -q,
		])


class SpatialTree:
	def __init__(self) -> None:
		self.cells: List[TreeCell] = []
		self.roots: List[int] = []
		self.pos = np.empty((0, 3))
		self.source_mass = np.empty(0)
		self.leaf_of = np.empty(0, dtype=np.int64)
		self.root_size = 0.0
		self.root_n: Tuple[int, int, int] = (1, 1, 1)
		self.boxsize: Tuple[float, float, float] = (0.0, 0.0, 0.0)
		self.origin = np.zeros(3)

	def __len__(self) -> int:
		return len(self.cells)

	def rebuild(
		self,
		pos: np.ndarray,
		source_mass: np.ndarray,
		root_size: float = 0.0,
		root_n: Sequence[int] = (1, 1, 1),
		wrap: Sequence[bool] = (False, False, False),
		bounded: bool = False,
	) -> "SpatialTree":
		pos = np.array(pos, dtype=float, copy=True)
		n = pos.shape[0]
		self.cells = []
		self.roots = []
		self.source_mass = np.asarray(source_mass, dtype=float)
		self.leaf_of = np.full(n, -1, dtype=np.int64)

		if bounded:
			self.root_size = float(root_size)
			self.root_n = tuple(int(k) for k in root_n)
		else:
			self.root_size = self._auto_root_size(pos)
			self.root_n = (1, 1, 1)
			self.origin = self._auto_center(pos)
		self.boxsize = tuple(self.root_size * k for k in self.root_n)
		if bounded:
			self.origin = np.zeros(3)

		inside = np.ones(n, dtype=bool)
		for axis in range(3):
			b = self.boxsize[axis]
			rel = pos[:, axis] - self.origin[axis]
			if bounded and wrap[axis]:
				far = np.abs(rel) > 0.5 * b
				rel[far] -= b * np.floor((rel[far] + 0.5 * b) / b)
				pos[:, axis] = rel + self.origin[axis]
			elif bounded:
				inside &= (rel >= -0.5 * b) & (rel <= 0.5 * b)
		self.pos = pos

		nx, ny, nz = self.root_n
		for ix in range(nx):
			for iy in range(ny):
				for iz in range(nz):
					c = self.origin + np.array([
						-0.5 * self.boxsize[0] + (ix + 0.5) * self.root_size,
						-0.5 * self.boxsize[1] + (iy + 0.5) * self.root_size,
						-0.5 * self.boxsize[2] + (iz + 0.5) * self.root_size,
					])
					self.cells.append(TreeCell(c, self.root_size, 0))
					self.roots.append(len(self.cells) - 1)

		for i in range(n):
			if not inside[i]:
				continue
			self._insert(self.roots[self.root_index(pos[i])], i)

		self._summarize()
		return self

	@staticmethod
	def _auto_center(pos: np.ndarray) -> np.ndarray:
		if pos.shape[0] == 0:
			return np.zeros(3)
		return 0.5 * (pos.min(axis=0) + pos.max(axis=0))

	@staticmethod
	def _auto_root_size(pos: np.ndarray) -> float:
		if pos.shape[0] == 0:
			return 1.0
		extent = float(np.max(pos.max(axis=0) - pos.min(axis=0)))
		if extent <= 0.0 or not math.isfinite(extent):
			return 1.0
		return extent * (1.0 + 1.0e-9) + 1.0e-12

	def root_index(self, point: np.ndarray) -> int:
		idx = []
		for axis in range(3):
			k = int(math.floor((point[axis] - self.origin[axis] + 0.5 * self.boxsize[axis]) / self.root_size))
			idx.append(min(max(k, 0), self.root_n[axis] - 1))
		ix, iy, iz = idx
		return (ix * self.root_n[1] + iy) * self.root_n[2] + iz

	def _insert(self, cell_idx: int, i: int) -> None:
		p = self.pos[i]
		while True:
			cell = self.cells[cell_idx]
			if cell.is_leaf:
				if not cell.particles:
					cell.particles.append(i)
					self.leaf_of[i] = cell_idx
					return
				if cell.depth >= IntegratorConstants.TREE_MAX_DEPTH:
					cell.particles.append(i)
					self.leaf_of[i] = cell_idx
					return
				self._split(cell_idx)
				cell = self.cells[cell_idx]
			o = cell.octant(p)
			child = cell.children[o]
			if child < 0:
				child = len(self.cells)
				self.cells.append(TreeCell(cell.child_center(o), 0.5 * cell.w, cell.depth + 1))
				cell.children[o] = child
			cell_idx = child

	def _split(self, cell_idx: int) -> None:
		cell = self.cells[cell_idx]
		held = cell.particles
		cell.particles = []
		cell.children = [-1] * 8
		for j in held:
			o = cell.octant(self.pos[j])
			child = len(self.cells)
			self.cells.append(TreeCell(cell.child_center(o), 0.5 * cell.w, cell.depth + 1))
			cell.children[o] = child
			self._insert(child, j)

	def _summarize(self) -> None:
		eye = np.eye(3)
		for cell in reversed(self.cells):
			if cell.is_leaf:
				members = cell.particles
				if not members:
					continue
				m = self.source_mass[members]
				x = self.pos[members]
				cell.m = float(np.sum(m))
				if cell.m > 0.0:
					cell.com = (m[:, None] * x).sum(axis=0) / cell.m
				else:
					cell.com = x.mean(axis=0)
				d = x - cell.com
				cell.quad = (3.0 * np.einsum("k,ki,kj->ij", m, d, d)
							 - np.sum(m * np.einsum("ki,ki->k", d, d)) * eye)
				continue
			kids = [self.cells[c] for c in cell.children if c >= 0]
			m = np.array([k.m for k in kids])
			cell.m = float(np.sum(m))
			if cell.m > 0.0:
				cell.com = sum(k.m * k.com for k in kids) / cell.m
			else:
				cell.com = cell.center.copy()
			quad = np.zeros((3, 3))
			for k in kids:
				if k.m == 0.0:
					continue
				d = k.com - cell.com
				quad += k.quad + k.m * (3.0 * np.outer(d, d) - float(d @ d) * eye)
			cell.quad = quad

	def particle_cell(self, i: int) -> int:
		return int(self.leaf_of[i])

	def acceleration(
		self,
		point: np.ndarray,
		G: float,
		opening_angle2: float,
		softening2: float = 0.0,
		skip: int = -1,
		quadrupole: bool = True,
	) -> np.ndarray:
		acc = np.zeros(3)
		stack = list(self.roots)
		while stack:
			cell = self.cells[stack.pop()]
			if cell.m == 0.0:
				continue
			if cell.is_leaf:
				for j in cell.particles:
					mj = self.source_mass[j]
					if j == skip or mj == 0.0:
						continue
					d = self.pos[j] - point
					r2 = float(d @ d) + softening2
					if r2 == 0.0:
						continue
					acc += G * mj * d / (r2 * math.sqrt(r2))
				continue
			r = point - cell.com
			dist2 = float(r @ r)
			if cell.w * cell.w < opening_angle2 * dist2 and not cell.contains(point):
				r2s = dist2 + softening2
				acc -= G * cell.m * r / (r2s * math.sqrt(r2s))
				if quadrupole:
					qr = cell.quad @ r
					rqr = float(r @ qr)
					inv_r = 1.0 / math.sqrt(dist2)
					inv_r5 = inv_r ** 5
					acc += G * (qr * inv_r5 - 2.5 * rqr * r * inv_r5 * inv_r * inv_r)
				continue
			stack.extend(c for c in cell.children if c >= 0)
		return acc

	def collision_candidates(self, point: np.ndarray, search_radius: float) -> List[int]:
		found: List[int] = []
		stack = list(self.roots)
		while stack:
			cell = self.cells[stack.pop()]
			d = point - cell.center
			if math.sqrt(float(d @ d)) > search_radius + _HALF_DIAGONAL * cell.w:
				continue
			if cell.is_leaf:
				found.extend(cell.particles)
			else:
				stack.extend(c for c in cell.children if c >= 0)
		return found


__all__ = ["TreeCell", "SpatialTree"]
