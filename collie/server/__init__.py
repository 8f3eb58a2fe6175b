"""HTTP API and Server-Sent Events."""
