"""
Voice Memo Ingestion Domain

Watches a folder for new audio recordings and turns each one into a note:
- watcher.py - Directory change notifications (watchdog)
- ingestion_queue.py - Serialized single-worker ingestion queue
- stability.py - Waits for files that are still being written
- store.py - Durable dedupe ledger keyed by file fingerprint
- worker.py - Per-file pipeline (stability, dedupe, transcribe, note)
- notes.py / retry.py - Note-creation target and its retry policy
- service.py - Composition root for one watch session
"""

__all__ = [
    "access",
    "alerts",
    "errors",
    "fingerprint",
    "notes",
    "preferences",
    "ingestion_queue",
    "retry",
    "scanner",
    "service",
    "stability",
    "store",
    "template",
    "transcriber",
    "watcher",
    "worker",
]
