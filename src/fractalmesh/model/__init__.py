"""
The MODEL layer contains pure data structures and numerics.
It has NO knowledge of the process group or of any transport.
It deals with Bounds, Fields, Meshes and I/O.
"""
