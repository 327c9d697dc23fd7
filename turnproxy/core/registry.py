"""Runtime registry for breaking circular imports.

This module holds the proxy state (upstream runtime, model resolver and
settings) so that routes can import it without importing the main module.
"""

# Global proxy state - set by main.create_app during initialization
state = None


def set_state(state_instance):
    """Set the global proxy state."""
    global state
    state = state_instance


def get_state():
    """Get the global proxy state."""
    if state is None:
        raise RuntimeError("Proxy state not initialized. Did you call set_state?")
    return state
