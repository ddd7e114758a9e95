"""Google Calendar event creation over MCP, with a one-time OAuth setup."""
