"""Growth rules shared by the generators."""

from .radius import apply_pipe_model, update_radii

__all__ = ["apply_pipe_model", "update_radii"]
