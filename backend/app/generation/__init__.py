"""Generation core: orchestrator, module prompts and the session pipeline."""
