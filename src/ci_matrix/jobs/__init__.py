"""Test sharding, artifact storage and job execution."""

from .shard import (
    TestShard,
    iter_shards,
    partition_tests,
    select_chunk,
    read_test_list,
    write_test_list,
    create_chunk_files,
    count_chunks,
    get_chunk_file,
)
from .artifacts import ArtifactStore, ArtifactError, ArtifactExistsError, ArtifactNotFoundError

__all__ = [
    'TestShard',
    'iter_shards',
    'partition_tests',
    'select_chunk',
    'read_test_list',
    'write_test_list',
    'create_chunk_files',
    'count_chunks',
    'get_chunk_file',
    'ArtifactStore',
    'ArtifactError',
    'ArtifactExistsError',
    'ArtifactNotFoundError',
]
