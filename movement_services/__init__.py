"""
Movement Services.

Read-side services composed over the kernel: the request board.
"""

from movement_services.board_presenter import Board, BoardColumn, BoardPresenter

__all__ = [
    "Board",
    "BoardColumn",
    "BoardPresenter",
]
