"""heroverse: an endless comic book generator driven by Gemini."""
__version__ = "0.1.0"
