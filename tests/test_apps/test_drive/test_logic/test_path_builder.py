"""Tests for materialized path and name rules."""

import pytest

from server.apps.drive.exceptions import (
    InvalidNameError,
    InvalidTagsError,
    PathTooLongError,
)
from server.apps.drive.logic import path_builder


@pytest.mark.parametrize('raw', [
    '',
    '   ',
    None,
    'a/b',
    'back\\slash',
    'what?',
    'pipe|name',
    'tab\there',
    'up..dir',
    '.hidden',
    'trailing.',
    'CON',
    'lpt3',
    'x' * 256,
])
def test_validate_name_rejects(raw):
    """Test unacceptable folder names are rejected."""
    with pytest.raises(InvalidNameError):
        path_builder.validate_name(raw)


def test_validate_name_trims():
    """Test surrounding whitespace is removed."""
    assert path_builder.validate_name('  Docs  ') == 'Docs'


def test_validate_name_accepts_max_length():
    """Test a name of exactly 255 characters is accepted."""
    name = 'n' * 255

    assert path_builder.validate_name(name) == name


def test_clean_file_name_is_looser_than_folder_names():
    """Test file names may start with a dot or contain '?'."""
    assert path_builder.clean_file_name(' .env ') == '.env'
    assert path_builder.clean_file_name('why?.txt') == 'why?.txt'


def test_clean_file_name_rejects_separators():
    """Test file names stay a single segment."""
    with pytest.raises(InvalidNameError):
        path_builder.clean_file_name('a/b.txt')


def test_child_path_below_root_has_single_slash():
    """Test root children do not get a double slash."""
    assert path_builder.child_path('/', 'Docs') == '/Docs'
    assert path_builder.child_path('/Docs', 'Work') == '/Docs/Work'


def test_child_path_too_long():
    """Test paths over 1024 characters are rejected."""
    parent = '/' + 'p' * 1020

    with pytest.raises(PathTooLongError):
        path_builder.child_path(parent, 'four')


def test_depth_of():
    """Test depth counts the path segments."""
    assert path_builder.depth_of('/') == 0
    assert path_builder.depth_of('/a') == 1
    assert path_builder.depth_of('/a/b/c') == 3


def test_ancestor_paths():
    """Test ancestors are listed root first."""
    assert path_builder.ancestor_paths('/a/b/c') == ['/', '/a', '/a/b']
    assert path_builder.ancestor_paths('/a') == ['/']
    assert path_builder.ancestor_paths('/') == []


def test_is_same_or_descendant_needs_segment_boundary():
    """Test '/ab' is not below '/a'."""
    assert path_builder.is_same_or_descendant('/a', '/a')
    assert path_builder.is_same_or_descendant('/a/b', '/a')
    assert not path_builder.is_same_or_descendant('/ab', '/a')
    assert path_builder.is_same_or_descendant('/a', '/')


def test_replace_prefix_only_rewrites_leading_part():
    """Test a repeated segment deeper in the path is left alone."""
    result = path_builder.replace_prefix('/a/x/a/y', '/a', '/b')

    assert result == '/b/x/a/y'


def test_replace_prefix_rejects_unrelated_path():
    """Test rewriting a path outside the prefix fails."""
    with pytest.raises(ValueError, match='is not below'):
        path_builder.replace_prefix('/other', '/a', '/b')


def test_normalize_tags():
    """Test tags are trimmed and lower-cased in order."""
    assert path_builder.normalize_tags([' Trip ', 'BEACH']) == ['trip', 'beach']
    assert path_builder.normalize_tags(None) == []


def test_normalize_tags_limit():
    """Test more than ten tags are rejected."""
    path_builder.normalize_tags([f't{index}' for index in range(10)])

    with pytest.raises(InvalidTagsError):
        path_builder.normalize_tags([f't{index}' for index in range(11)])


def test_normalize_tags_rejects_string():
    """Test a bare string is not treated as a list of characters."""
    with pytest.raises(InvalidTagsError):
        path_builder.normalize_tags('holiday')
