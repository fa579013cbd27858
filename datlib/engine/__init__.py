"""Engine — interfaces to the archive engine, name resolution, and migrations."""
