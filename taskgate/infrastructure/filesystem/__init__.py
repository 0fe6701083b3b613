"""Local file I/O for backup documents."""
