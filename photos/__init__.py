"""photos/ -- Photo slot engine for Matcha.

One avatar slot plus gallery positions 1..N (N <= 4 while an avatar exists,
5 slots in total). Pure slot algorithms live in slots.py, persistence and
owner-serialized transactions in store.py, image work in imaging.py, backing
files in files.py, and the upload/delete/reorder orchestration in service.py.

Layer rule: photos/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or auth/.
"""
