"""cloudray: Tracer Package.

Surface radiance caches, primitives, scene, and the forward (light) and
backward (eye) recursive ray propagation engines.
"""
