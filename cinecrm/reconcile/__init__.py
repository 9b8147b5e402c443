"""Entity resolution and post-import repair passes."""
