"""
Project Maker CLI Module

Contains the command-line interface:
- main: CLI entry point with typer
- Commands: project, feature, board, generate, llm, config
- output: rich rendering of projects, features, boards and automation logs
"""

from .main import app, main

__all__ = [
    "app",
    "main",
]
