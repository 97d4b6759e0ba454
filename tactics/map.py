import math
from collections import deque
from dataclasses import dataclass, field
from heapq import heappush, heappop
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .enums import GridKind, Side, TerrainType

Cell = Tuple[int, int]

# Flat-top hexes, odd columns shoved down (odd-q offset layout).
_HEX_DIRS_EVEN = [(1, 0), (1, -1), (0, -1), (-1, -1), (-1, 0), (0, 1)]
_HEX_DIRS_ODD = [(1, 1), (1, 0), (0, -1), (-1, 0), (-1, 1), (0, 1)]
_SQUARE_DIRS = [(0, 1), (1, 0), (0, -1), (-1, 0)]
_DIAGONAL_DIRS = [(1, 1), (1, -1), (-1, 1), (-1, -1)]


@dataclass(frozen=True)
class Position:
    x: int
    y: int
    altitude: int = 0

    @property
    def cell(self) -> Cell:
        return (self.x, self.y)

    def at_altitude(self, altitude: int) -> "Position":
        return Position(self.x, self.y, altitude)

    def moved_to(self, x: int, y: int) -> "Position":
        return Position(x, y, self.altitude)


@dataclass
class Tile:
    x: int
    y: int
    terrain_type: TerrainType = TerrainType.NORMAL
    passable: bool = True
    move_cost: int = 1
    height: int = 0
    occupant: Optional[Any] = None

    def can_enter(self, unit: Optional[Any] = None) -> bool:
        if not self.passable or self.terrain_type == TerrainType.WALL:
            return False
        if self.occupant is not None and self.occupant is not unit:
            return False
        return True

    def blocks_sight(self) -> bool:
        return self.terrain_type == TerrainType.WALL

    def __repr__(self) -> str:
        return f"Tile({self.x},{self.y},{self.terrain_type.value})"


def offset_to_cube(col: int, row: int) -> Tuple[int, int, int]:
    q = col
    r = row - (col - (col & 1)) // 2
    return q, -q - r, r


def cube_to_offset(x: int, y: int, z: int) -> Cell:
    col = x
    row = z + (x - (x & 1)) // 2
    return col, row


def _cube_round(x: float, y: float, z: float) -> Tuple[int, int, int]:
    rx, ry, rz = round(x), round(y), round(z)
    dx, dy, dz = abs(rx - x), abs(ry - y), abs(rz - z)
    if dx > dy and dx > dz:
        rx = -ry - rz
    elif dy > dz:
        ry = -rx - rz
    else:
        rz = -rx - ry
    return int(rx), int(ry), int(rz)


class TacticalMap:
    def __init__(self, width: int, height: int, grid: GridKind = GridKind.HEX,
                 feet_per_cell: int = 5, allow_diagonal: bool = False):
        self.width = width
        self.height = height
        self.grid_kind = grid
        self.feet_per_cell = feet_per_cell
        self.allow_diagonal = allow_diagonal
        self.grid: List[List[Tile]] = []
        for y in range(height):
            row = []
            for x in range(width):
                row.append(Tile(x=x, y=y))
            self.grid.append(row)

    def get_tile(self, x: int, y: int) -> Optional[Tile]:
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.grid[y][x]
        return None

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def set_terrain(self, x: int, y: int, terrain: TerrainType, move_cost: Optional[int] = None) -> None:
        tile = self.get_tile(x, y)
        if tile is None:
            return
        tile.terrain_type = terrain
        tile.passable = terrain != TerrainType.WALL
        if move_cost is not None:
            tile.move_cost = move_cost
        elif terrain in (TerrainType.FOREST, TerrainType.WATER, TerrainType.MOUNTAIN):
            tile.move_cost = 2

    def is_passable(self, x: int, y: int, unit: Optional[Any] = None) -> bool:
        tile = self.get_tile(x, y)
        if tile is None:
            return False
        return tile.can_enter(unit)

    def is_edge(self, x: int, y: int) -> bool:
        return x == 0 or y == 0 or x == self.width - 1 or y == self.height - 1

    def get_neighbors(self, x: int, y: int, allow_diagonal: Optional[bool] = None) -> List[Cell]:
        if self.grid_kind == GridKind.HEX:
            dirs = _HEX_DIRS_ODD if x & 1 else _HEX_DIRS_EVEN
        else:
            diagonal = self.allow_diagonal if allow_diagonal is None else allow_diagonal
            dirs = _SQUARE_DIRS + (_DIAGONAL_DIRS if diagonal else [])
        neighbors = []
        for dx, dy in dirs:
            nx, ny = x + dx, y + dy
            if self.in_bounds(nx, ny):
                neighbors.append((nx, ny))
        return neighbors

    def distance(self, a: Cell, b: Cell) -> int:
        """Grid steps between two cells."""
        if self.grid_kind == GridKind.HEX:
            ax, ay, az = offset_to_cube(*a)
            bx, by, bz = offset_to_cube(*b)
            return max(abs(ax - bx), abs(ay - by), abs(az - bz))
        if self.allow_diagonal:
            return max(abs(a[0] - b[0]), abs(a[1] - b[1]))
        return self.manhattan_distance(a[0], a[1], b[0], b[1])

    def manhattan_distance(self, x1: int, y1: int, x2: int, y2: int) -> int:
        return abs(x2 - x1) + abs(y2 - y1)

    def distance_ft(self, a: Cell, b: Cell) -> int:
        return self.distance(a, b) * self.feet_per_cell

    def distance_3d_ft(self, a: Position, b: Position) -> int:
        """Horizontal feet combined with the altitude delta."""
        horizontal = self.distance_ft(a.cell, b.cell)
        vertical = abs(a.altitude - b.altitude)
        if vertical == 0:
            return horizontal
        return int(round(math.hypot(horizontal, vertical)))

    def get_reachable_tiles(self, start_x: int, start_y: int, movement_points: int, unit: Optional[Any] = None) -> Dict[Cell, int]:
        reachable = {(start_x, start_y): 0}
        queue = deque([(start_x, start_y, 0)])
        while queue:
            x, y, cost = queue.popleft()
            for nx, ny in self.get_neighbors(x, y):
                tile = self.get_tile(nx, ny)
                if tile is None or not tile.can_enter(unit):
                    continue
                new_cost = cost + tile.move_cost
                if new_cost > movement_points:
                    continue
                if (nx, ny) in reachable and reachable[(nx, ny)] <= new_cost:
                    continue
                reachable[(nx, ny)] = new_cost
                queue.append((nx, ny, new_cost))
        return reachable

    def steps_within(self, start: Cell, max_steps: int, unit: Optional[Any] = None) -> Dict[Cell, int]:
        """Cells reachable in at most *max_steps* moves, ignoring terrain cost."""
        visited = {start: 0}
        queue = deque([(start, 0)])
        while queue:
            cell, steps = queue.popleft()
            if steps >= max_steps:
                continue
            for n in self.get_neighbors(*cell):
                if n in visited or not self.is_passable(n[0], n[1], unit):
                    continue
                visited[n] = steps + 1
                queue.append((n, steps + 1))
        return visited

    def find_path(self, start_x: int, start_y: int, goal_x: int, goal_y: int, unit: Optional[Any] = None,
                  allow_occupied_goal: bool = False) -> Optional[List[Cell]]:
        goal_tile = self.get_tile(goal_x, goal_y)
        if goal_tile is None:
            return None
        if not goal_tile.can_enter(unit):
            if not (allow_occupied_goal and goal_tile.passable and goal_tile.terrain_type != TerrainType.WALL):
                return None
        counter = 0
        start_node = (0, counter, start_x, start_y, 0, [(start_x, start_y)])
        frontier = [start_node]
        visited: Set[Cell] = set()
        while frontier:
            _, _, x, y, g_cost, path = heappop(frontier)
            if (x, y) in visited:
                continue
            visited.add((x, y))
            if x == goal_x and y == goal_y:
                return path
            for nx, ny in self.get_neighbors(x, y):
                if (nx, ny) in visited:
                    continue
                tile = self.get_tile(nx, ny)
                if tile is None:
                    continue
                is_goal = (nx, ny) == (goal_x, goal_y)
                if not tile.can_enter(unit) and not (is_goal and allow_occupied_goal):
                    continue
                new_g = g_cost + tile.move_cost
                f_cost = new_g + self.distance((nx, ny), (goal_x, goal_y))
                counter += 1
                heappush(frontier, (f_cost, counter, nx, ny, new_g, path + [(nx, ny)]))
        return None

    def get_tiles_in_range(self, center_x: int, center_y: int, min_range: int = 0, max_range: int = 1) -> List[Cell]:
        tiles = []
        for y in range(max(0, center_y - max_range - 1), min(self.height, center_y + max_range + 2)):
            for x in range(max(0, center_x - max_range), min(self.width, center_x + max_range + 1)):
                dist = self.distance((center_x, center_y), (x, y))
                if min_range <= dist <= max_range:
                    tiles.append((x, y))
        return tiles

    def line(self, a: Cell, b: Cell) -> List[Cell]:
        """Cells crossed by a straight line from *a* to *b*, endpoints included."""
        if self.grid_kind == GridKind.HEX:
            return self._hex_line(a, b)
        return self._square_line(a, b)

    def _hex_line(self, a: Cell, b: Cell) -> List[Cell]:
        n = self.distance(a, b)
        if n == 0:
            return [a]
        ax, ay, az = offset_to_cube(*a)
        bx, by, bz = offset_to_cube(*b)
        # Nudge keeps lines that run exactly along hex edges deterministic.
        ax, ay, az = ax + 1e-6, ay + 1e-6, az - 2e-6
        cells = []
        for i in range(n + 1):
            t = i / n
            cube = _cube_round(ax + (bx - ax) * t, ay + (by - ay) * t, az + (bz - az) * t)
            cells.append(cube_to_offset(*cube))
        return cells

    def _square_line(self, a: Cell, b: Cell) -> List[Cell]:
        x0, y0 = a
        x1, y1 = b
        dx = abs(x1 - x0)
        dy = -abs(y1 - y0)
        sx = 1 if x0 < x1 else -1
        sy = 1 if y0 < y1 else -1
        err = dx + dy
        cells = []
        while True:
            cells.append((x0, y0))
            if (x0, y0) == (x1, y1):
                return cells
            e2 = 2 * err
            if e2 >= dy:
                err += dy
                x0 += sx
            if e2 <= dx:
                err += dx
                y0 += sy

    def has_line_of_sight(self, a: Cell, b: Cell) -> bool:
        for cell in self.line(a, b):
            if cell in (a, b):
                continue
            tile = self.get_tile(*cell)
            if tile and tile.blocks_sight():
                return False
        return True

    def cover_between(self, attacker: Cell, defender: Cell) -> str:
        if not self.has_line_of_sight(attacker, defender):
            return "full"
        tile = self.get_tile(*defender)
        if tile and tile.terrain_type == TerrainType.FOREST:
            return "half"
        return "none"

    def set_occupant(self, x: int, y: int, occupant: Optional[Any]):
        tile = self.get_tile(x, y)
        if tile:
            tile.occupant = occupant

    def clear_occupant(self, x: int, y: int):
        self.set_occupant(x, y, None)

    def occupant_at(self, x: int, y: int) -> Optional[Any]:
        tile = self.get_tile(x, y)
        return tile.occupant if tile else None

    def occupied_cells(self) -> Dict[Cell, Any]:
        return {(t.x, t.y): t.occupant for row in self.grid for t in row if t.occupant is not None}


@dataclass
class FogOfWar:
    """Per-side visibility computed from line of sight and sight range."""
    tactical_map: TacticalMap
    sight_range: int = 12
    visible: Dict[Side, Set[Cell]] = field(default_factory=dict)
    explored: Dict[Side, Set[Cell]] = field(default_factory=dict)

    def update(self, combatants: Iterable[Any]) -> None:
        self.visible = {Side.ALLY: set(), Side.ENEMY: set()}
        for c in combatants:
            if c.position is None or not c.is_conscious:
                continue
            seen = self.visible[c.side]
            origin = c.position.cell
            for cell in self.tactical_map.get_tiles_in_range(*origin, max_range=self.sight_range):
                if cell in seen:
                    continue
                if self.tactical_map.has_line_of_sight(origin, cell):
                    seen.add(cell)
        for side, cells in self.visible.items():
            self.explored.setdefault(side, set()).update(cells)

    def visible_to(self, side: Side) -> Set[Cell]:
        return set(self.visible.get(side, set()))

    def can_see(self, side: Side, cell: Cell) -> bool:
        return cell in self.visible.get(side, set())

    def was_explored(self, side: Side, cell: Cell) -> bool:
        return cell in self.explored.get(side, set())
