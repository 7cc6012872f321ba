"""
isothreshold

Threshold visualization of scalar fields on tetrahedral meshes: a mask over
the base rendering plus explicit isosurfaces at the interval bounds.
"""

__version__ = "1.0.0"
