import gevent.monkey
gevent.monkey.patch_all()

import logging
import os

import argh

from customersync.main import serve, apply

LOG_FORMAT = "[%(asctime)s] %(levelname)8s %(name)s(%(module)s:%(lineno)d): %(message)s"

level = os.environ.get('CUSTOMERSYNC_LOG_LEVEL', 'INFO').upper()
logging.basicConfig(level=level, format=LOG_FORMAT)
argh.dispatch_commands([serve, apply])
