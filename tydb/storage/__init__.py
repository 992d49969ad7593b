"""File storage abstraction with in-memory and directory-backed implementations."""