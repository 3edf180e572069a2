"""Browser capabilities: driver protocols, Playwright adapter and the agent pool."""
