"""Session-aware relay between HTTP clients and the Gemini API."""
