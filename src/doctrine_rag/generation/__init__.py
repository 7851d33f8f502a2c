"""
Generation layer: chat model wrappers, prompt templates and the answer
generator that combines them.
"""
