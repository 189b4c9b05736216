import numpy as np
from typing import Iterable, List, NamedTuple, Sequence, Tuple, Union

from cquant.errors import MalformedGridError


class Color(NamedTuple):
    """
    An 8-bit RGB color. Equality and hashing are by channel values,
    so a Color can be used directly as a ColorMap key.
    """
    red: int
    green: int
    blue: int

    @property
    def hue(self) -> float:
        """HSV hue in degrees, [0, 360). Achromatic colors (max == min) have hue 0."""
        r, g, b = self.red, self.green, self.blue
        mx = max(r, g, b)
        delta = mx - min(r, g, b)
        if delta == 0:
            return 0.0
        # Same operation order as hues() so scalar and array results agree exactly
        if mx == r:
            return 60.0 * (((g - b) / delta) % 6.0)
        if mx == g:
            return 60.0 * ((b - r) / delta + 2.0)
        return 60.0 * ((r - g) / delta + 4.0)

    @property
    def packed(self) -> int:
        """24-bit integer with red most significant. Only used to break ties."""
        return self.red * 65536 + self.green * 256 + self.blue

    @property
    def hex(self) -> str:
        return f"#{self.red:02x}{self.green:02x}{self.blue:02x}"

    @classmethod
    def from_array(cls, values: Sequence[int]) -> "Color":
        # numpy uint8 scalars overflow in arithmetic, always store plain ints
        return cls(int(values[0]), int(values[1]), int(values[2]))


Palette = List[Color]


def hues(colors: np.ndarray) -> np.ndarray:
    """
    Vectorised Color.hue for an (N, 3) array of RGB values.

    Returns:
        np.ndarray: float64 hues in degrees, shape (N,).
    """
    c = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    r, g, b = c[:, 0], c[:, 1], c[:, 2]
    mx = c.max(axis=1)
    delta = mx - c.min(axis=1)
    safe_delta = np.where(delta == 0, 1.0, delta)

    hue_r = 60.0 * (((g - b) / safe_delta) % 6.0)
    hue_g = 60.0 * ((b - r) / safe_delta + 2.0)
    hue_b = 60.0 * ((r - g) / safe_delta + 4.0)

    out = np.where(mx == r, hue_r, np.where(mx == g, hue_g, hue_b))
    return np.where(delta == 0, 0.0, out)


def pack_rgb(colors: np.ndarray) -> np.ndarray:
    """Vectorised Color.packed for an (N, 3) array."""
    c = np.asarray(colors, dtype=np.int64).reshape(-1, 3)
    return c[:, 0] * 65536 + c[:, 1] * 256 + c[:, 2]


def unpack_rgb(packed: np.ndarray) -> np.ndarray:
    """Inverse of pack_rgb: (N,) packed values -> (N, 3) int64 array."""
    p = np.asarray(packed, dtype=np.int64).reshape(-1)
    return np.stack([(p >> 16) & 0xFF, (p >> 8) & 0xFF, p & 0xFF], axis=1)


def colors_to_array(palette: Iterable[Sequence[int]]) -> np.ndarray:
    """Turn a sequence of colors into an (N, 3) int64 array."""
    return np.array([tuple(int(v) for v in color) for color in palette], dtype=np.int64).reshape(-1, 3)


class ColorGrid:
    """
    Read-only rows x cols grid of colors in row-major order, backed by a
    (rows, cols, 3) uint8 numpy array.

    Pixel data is validated on construction: it must be rectangular with
    three integer channels in [0, 255]. A grid with no pixels is allowed
    to exist but every quantization operation rejects it.
    """

    def __init__(self, pixels: Union[np.ndarray, Sequence]):
        try:
            arr = np.asarray(pixels)
        except ValueError as e:  # ragged nested sequences
            raise MalformedGridError(f"Grid rows must all have the same length: {e}") from e

        if arr.size == 0:
            arr = np.zeros((0, 0, 3), dtype=np.uint8)
        else:
            if arr.dtype == object or arr.dtype.kind not in "iu":
                raise MalformedGridError(f"Grid channel values must be integers, got dtype {arr.dtype}.")
            if arr.ndim != 3 or arr.shape[2] != 3:
                raise MalformedGridError(f"Grid must have shape (rows, cols, 3), got {arr.shape}.")
            if arr.min() < 0 or arr.max() > 255:
                raise MalformedGridError("Grid channel values must be in the range [0, 255].")

        self._pixels = np.array(arr, dtype=np.uint8)
        self._pixels.setflags(write=False)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[Sequence[int]]]) -> "ColorGrid":
        """Build a grid from nested rows of (r, g, b) tuples or Colors."""
        return cls([[tuple(pixel) for pixel in row] for row in rows])

    @classmethod
    def from_array(cls, array: np.ndarray) -> "ColorGrid":
        return cls(array)

    @property
    def rows(self) -> int:
        return self._pixels.shape[0]

    @property
    def cols(self) -> int:
        return self._pixels.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.cols

    @property
    def is_empty(self) -> bool:
        return self.rows == 0 or self.cols == 0

    @property
    def pixels(self) -> np.ndarray:
        """The underlying read-only uint8 array."""
        return self._pixels

    def __getitem__(self, position: Tuple[int, int]) -> Color:
        r, c = position
        return Color.from_array(self._pixels[r, c])

    def __eq__(self, other) -> bool:
        if not isinstance(other, ColorGrid):
            return NotImplemented
        return self.shape == other.shape and np.array_equal(self._pixels, other._pixels)

    def __repr__(self) -> str:
        return f"ColorGrid(rows={self.rows}, cols={self.cols})"

    def to_array(self) -> np.ndarray:
        """Writable copy of the pixel data."""
        return self._pixels.copy()

    def to_rows(self) -> List[List[Color]]:
        return [[Color.from_array(px) for px in row] for row in self._pixels]

    def unique_colors(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Distinct colors of the grid with their pixel counts.

        Returns:
            Tuple[np.ndarray, np.ndarray]:
                - (U, 3) int64 array of distinct colors, in the order they are
                  first met scanning the grid row by row.
                - (U,) int64 array of how many pixels hold each color.
        """
        flat = self._pixels.reshape(-1, 3)
        packed = pack_rgb(flat)
        _, first_index, counts = np.unique(packed, return_index=True, return_counts=True)
        order = np.argsort(first_index, kind="stable")
        colors = flat[first_index[order]].astype(np.int64)
        return colors, counts[order].astype(np.int64)
