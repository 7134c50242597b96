"""Cross-cutting helpers shared by the agent core and the server (logging, errors)."""
