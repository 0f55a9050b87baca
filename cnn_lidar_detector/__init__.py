"""
CNN LiDAR object detector package.

Exposes reusable primitives for loading the pretrained network, preparing
depth/height projections, running inference, color coding the objectness
output, and serving the FastAPI application.
"""
