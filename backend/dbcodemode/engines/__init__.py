"""
Engines: code mode (sandboxed multi-operation scripts over the tool registry).
"""
