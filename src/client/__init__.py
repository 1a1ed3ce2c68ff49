"""Client-side consumers of the agent event stream."""
