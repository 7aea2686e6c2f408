"""
Repository role configuration

Builds the hgrc blocks that put a repository into one of the roles used by
the integration tests, and appends them to config files.

Generation and writing are separate steps: ``build_block`` returns
structured sections, ``serialize`` turns them into ``[section]`` /
``key=value`` text, and ``append_config`` is the only place that touches the
file system. Blocks are always appended; when two blocks set the same key,
resolving it (last one wins) is left to the parser that reads the file.
"""

import os
from dataclasses import dataclass, field


SERVER = 'server'
CLIENT = 'client'
SHALLOW_TREE_SERVER = 'shallow-tree-server'
SHALLOW_TREE_CLIENT = 'shallow-tree-client'

ROLES = [SERVER, CLIENT, SHALLOW_TREE_SERVER, SHALLOW_TREE_CLIENT]

# option name -> (section, key) it controls
OPTION_KEYS = {
    'reponame': ('remotefilelog', 'reponame'),
    'cache_path': ('remotefilelog', 'cachepath'),
    'send_trees': ('treemanifest', 'sendtrees'),
    'tree_only': ('treemanifest', 'treeonly'),
    'shallow': ('remotefilelog', 'shallowtrees'),
}


@dataclass
class Section:
    name: str
    entries: list = field(default_factory=list)

    def set(self, key, value):
        for i, (existing_key, _) in enumerate(self.entries):
            if existing_key == key:
                self.entries[i] = (key, value)
                return
        self.entries.append((key, value))


def _sections(*specs):
    return [Section(name, list(entries)) for name, entries in specs]


def _role_defaults(role):
    if role == SERVER:
        return _sections(
            ('extensions', [('treemanifest', ''), ('remotefilelog', '')]),
            ('treemanifest', [('server', 'True')]),
            ('remotefilelog', [('server', 'True'), ('shallowtrees', 'True')]),
        )
    if role == CLIENT:
        return _sections(
            ('extensions', [('treemanifest', ''), ('remotefilelog', '')]),
            ('treemanifest', [('server', 'False'), ('treeonly', 'True')]),
            ('remotefilelog', [('server', 'False'), ('reponame', 'repo')]),
        )
    if role == SHALLOW_TREE_SERVER:
        return _sections(
            ('extensions', [('treemanifest', ''), ('remotefilelog', ''), ('smartlog', '')]),
            ('treemanifest', [('server', 'True'), ('sendtrees', 'True')]),
            ('remotefilelog', [('server', 'True'), ('shallowtrees', 'True')]),
        )
    if role == SHALLOW_TREE_CLIENT:
        return _sections(
            ('extensions', [
                ('treemanifest', ''), ('remotefilelog', ''), ('fastmanifest', ''), ('smartlog', ''),
            ]),
            ('treemanifest', [('sendtrees', 'True'), ('treeonly', 'True')]),
            ('remotefilelog', [('shallowtrees', 'True')]),
        )
    raise ValueError(f'unknown repository role {role!r}, expected one of {ROLES}')


def _format_value(value):
    if isinstance(value, bool):
        return 'True' if value else 'False'
    return str(value)


def build_block(role, options=None) -> list[Section]:
    """Sections for one role, with the recognized options applied.

    Options are applied verbatim. Combinations that make no sense for a role
    (tree_only on a server, say) are not rejected; validating them is the
    backend's job.
    """
    options = dict(options or {})
    unknown = [name for name in options if name not in OPTION_KEYS]
    if unknown:
        raise ValueError(f'Unsupported repository options: {unknown}')

    sections = _role_defaults(role)
    by_name = {section.name: section for section in sections}
    for name in OPTION_KEYS:
        value = options.get(name)
        if value is None:
            continue
        section_name, key = OPTION_KEYS[name]
        section = by_name.get(section_name)
        if section is None:
            section = by_name[section_name] = Section(section_name)
            sections.append(section)
        section.set(key, _format_value(value))
    return sections


def serialize(sections: list[Section]) -> str:
    lines = []
    for section in sections:
        lines.append(f'[{section.name}]')
        for key, value in section.entries:
            lines.append(f'{key}={value}')
    return '\n'.join(lines) + '\n'


def generate(role, options=None) -> str:
    return serialize(build_block(role, options))


def append_config(path, sections: list[Section]):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, 'at') as f:
        f.write(serialize(sections))


def common_client_block(dummyssh, cache_path) -> list[Section]:
    """Global client settings for talking to the server over the dummy ssh."""
    return _sections(
        ('ui', [('ssh', dummyssh)]),
        ('extensions', [('remotefilelog', '')]),
        ('remotefilelog', [('cachepath', cache_path)]),
    )


def repo_definition(path, repotype='blob:files', repoid=0) -> str:
    """Contents of a repos/<name> entry in the server's config repo."""
    return (
        f'path="{path}"\n'
        f'repotype="{repotype}"\n'
        f'repoid={repoid}\n'
    )
