"""
Narrator: long-form text to downloadable audio.
"""
