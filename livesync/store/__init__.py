"""Store — the declarative object store the reconciler reads from and writes status to.

The reconciler only depends on the small `ObjectClient` interface; the
`LocalStore` implementation keeps objects as YAML files in a directory
for development and the CLI.
"""
