"""MindForge: app idea to mindmap, PRDs and code scaffolding."""

__version__ = "0.4.0"
