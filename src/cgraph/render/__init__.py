"""Render layer: scene assembly and renderers."""

from cgraph.render.base import Renderer
from cgraph.render.scene import Scene, SceneEdge, SceneGroup, SceneNode, build_scene
from cgraph.render.svg import SvgRenderer

__all__ = ["Renderer", "Scene", "SceneEdge", "SceneGroup", "SceneNode", "SvgRenderer", "build_scene"]
