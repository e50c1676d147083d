"""Command line tool for inspecting a RiotPlan server."""
