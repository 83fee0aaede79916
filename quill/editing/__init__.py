from quill.editing.patcher import PatchOperation, Patcher

__all__ = ["PatchOperation", "Patcher"]
