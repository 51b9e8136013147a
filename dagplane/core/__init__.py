"""The job pipeline: dependency resolution, priority, compilation and deployment."""
