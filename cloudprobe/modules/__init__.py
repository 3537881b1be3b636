"""
Cloudprobe Modules - Black Box Architecture

The building blocks of one probe run. Low level modules (executor, stats,
pool) know nothing about clouds; batch, poller and saga drive them through
templates and stages; scenario is the only module that knows which resources
a deployment consists of and in which order they depend on each other.

Each module exposes its interface from its __init__ and keeps its helpers
private, so a module can be swapped (e.g. storage: Redis or in-memory) without
touching its callers.
"""
