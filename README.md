# tydb

Building blocks for an LSM-tree key/value store, in pure Python with no
third-party dependencies.

## What is inside

- `tydb.storage.base` – the storage abstraction. Files are identified by a
  `FileDesc` (a `FileType` such as `FileType.MANIFEST` or `FileType.TABLE`,
  plus a number). `Storage` is the abstract interface (`lock`, `log`,
  `set_meta`, `get_meta`, `list`, `open`, `create`, `remove`, `rename`,
  `close`); errors derive from `StorageError`.
- `tydb.storage.memory.MemStorage` keeps every file in memory.
- `tydb.storage.filesystem.open_file(path, read_only)` returns a
  `FileStorage` backed by a directory, guarded by a `LOCK` file, with a
  rotating `LOG` file and an atomically replaced `CURRENT` pointer.
  `gen_name` and `parse_name` convert between descriptors and file names.
- `tydb.iostats.CountingStorage` wraps any storage and counts the bytes read
  and written through its files (`reads()`, `writes()`).
- `tydb.session_record.SessionRecord` encodes and decodes manifest records
  (comparer name, journal and file numbers, sequence number, compaction
  pointers, added and deleted tables). Malformed input raises
  `ManifestCorruptedError`.
- `tydb.table.format` – block handles (`encode_block_handle`,
  `decode_block_handle`), varints and the CRC-32C `block_checksum`.
- `tydb.table.writer.TableWriter` writes a sorted table: prefix-compressed
  data blocks, an optional filter block, a metaindex block, an index block
  and a 48-byte footer. `BlockWriter` builds a single block.
- `tydb.table.block` decodes single blocks: `Block` with its bidirectional
  `BlockIterator` (`first`, `last`, `seek`, `next`, `prev`, optionally
  limited to a key range), and `FilterBlock`.
- `tydb.kv.KeyValue` – an ordered, in-memory list of key/value pairs with
  slicing by index or key range, plus sample data sets (`multiple_key_value`,
  `generate`, ...). `tydb.keyutil` has `KeyRange`, `bytes_separator`,
  `bytes_after` and randomized index walks.

## Example

```python
from tydb.session_record import SessionRecord
from tydb.storage.base import FileDesc, FileType
from tydb.storage.memory import MemStorage
from tydb.table.block import Block
from tydb.table.writer import BlockWriter

storage = MemStorage()
fd = FileDesc(FileType.MANIFEST, 1)

record = SessionRecord()
record.set_comparer("leveldb.BytewiseComparator")
record.set_journal_num(3)
record.set_next_file_num(4)

writer = storage.create(fd)
writer.write(record.encode())
writer.close()
storage.set_meta(fd)

reader = storage.open(storage.get_meta())
decoded = SessionRecord()
decoded.decode(reader.read())
reader.close()
assert decoded.encode() == record.encode()

builder = BlockWriter(restart_interval=2)
for key, value in [(b"deck", b"v1"), (b"dock", b"v2"), (b"duck", b"v3")]:
    builder.append(key, value)
builder.finish()
block = Block.from_bytes(builder.data())
assert list(block.iterator()) == [(b"deck", b"v1"), (b"dock", b"v2"), (b"duck", b"v3")]
```

## What it does not do

- There is no whole-table reader: the package can write a table file and
  decode its individual blocks, but it does not parse a table footer, look
  keys up across a table file or iterate over all its blocks.
- `TableWriter` stores blocks uncompressed; compressed blocks are neither
  written nor decoded.
- There is no database on top of these parts: no journal, memtable,
  compaction, versions or command-line program.

## Tests

```
pip install -e .[test]
pytest
```