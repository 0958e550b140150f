from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Detection:
    """
    One decoded detection in pixel coordinates.

    Bounds are inclusive: a box spanning columns 10..50 has `x=10, width=41`.
    """

    x: int
    y: int
    width: int
    height: int
    score: float
    class_id: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def as_xywh(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.width - 1, self.y + self.height - 1
