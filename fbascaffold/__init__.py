"""fbascaffold -- scaffolds file-based app projects from parameterised templates.

The package is organised as three stages driven by :mod:`fbascaffold.cli`:

* :mod:`fbascaffold.registry` discovers templates and validates manifests.
* :mod:`fbascaffold.resolver` merges overrides with declared defaults.
* :mod:`fbascaffold.engine` renders files and runs the post-generation hook.
"""

__version__ = "0.1.0"
