"""Market lifecycle engine: slugs, discovery, snapshots, resolution, scheduling."""
