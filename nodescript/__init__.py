"""
NodeScript: compiles visual node graphs into Fennel source.

    from nodescript.compiler import compile_graph
"""

__version__ = "0.1.0"
