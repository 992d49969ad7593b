"""Sorted table file format: block handles, table writer, and block and filter block decoding."""