"""Survey data access: point cloud files and the survey dataset handle."""
