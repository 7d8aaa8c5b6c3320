"""Active mitigation of detected attacks."""

from shheissee.mitigation.blocker import Blocker  # noqa: F401
