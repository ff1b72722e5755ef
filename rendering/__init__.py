"""cloudray: Rendering Package.

Light, angle and eye pass drivers, pass orchestration, and result persistence.
"""
