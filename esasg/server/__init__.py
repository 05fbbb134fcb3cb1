"""HTTP server, configuration, workers and instrumentation shared by the agents."""
