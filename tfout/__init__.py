"""
tfout syncs the outputs of Terraform state files into Kubernetes objects.

A `TerraformOutputs` object names one or more Terraform state files in object
storage. Their outputs are merged, then non-sensitive values are written to a
ConfigMap and sensitive values to a Secret, both owned by the object.
"""

__all__ = [
    "backend",
    "controller",
    "manifest",
    "store",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
