from .base import Runner


class NodeRunner(Runner):
    lang = "node"
    suffix = ".js"
    default_binary = "node"


class BashRunner(Runner):
    lang = "bash"
    suffix = ".sh"
    default_binary = "bash"
