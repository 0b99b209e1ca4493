"""fumosync — keep a local project directory in sync with a fumosclub script.

Pulls a script onto disk, pushes a project back, and watches a project
for changes so that every edit is sent to the remote editor as a
minimal partial update.
"""

__version__ = "0.3.0"
__app_name__ = "fumosync"
