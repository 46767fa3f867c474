from .params import *
from .types import *
from .link import *
from .codec import *
from .storage import *
from .arbiter import *
from .decoder import *
from .master import *
from .slave import *
from .bridge import *
from .interconnect import *
from .system import *
