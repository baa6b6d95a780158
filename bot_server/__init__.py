"""Bot server: HTTP host, conversation state store and turn dispatch."""
