"""treebuild - convention-driven incremental build orchestrator for C/C++ trees."""

__version__ = "1.2.0"
