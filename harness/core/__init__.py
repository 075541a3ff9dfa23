"""Run engine, scheduler and workflow executor."""
