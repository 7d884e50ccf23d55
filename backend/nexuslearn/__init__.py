"""NexusLearn study-assistant backend."""
