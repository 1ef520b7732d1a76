# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

import sys

from oslo_config import cfg
from oslo_log import log as logging
from oslo_service import service

from octavia_ingress import clients
from octavia_ingress import config
from octavia_ingress.controller import dispatcher
from octavia_ingress.controller import reconciler
from octavia_ingress.handlers import ingress as h_ingress
from octavia_ingress.handlers import logging as h_log
from octavia_ingress import watcher

CONF = cfg.CONF
LOG = logging.getLogger(__name__)


class IngressControllerService(service.Service):
    """Octavia Ingress controller Service."""

    def __init__(self):
        super(IngressControllerService, self).__init__()
        self.reconciler = reconciler.Reconciler()
        self.dispatcher = dispatcher.Dispatcher(self.reconciler)
        handler = h_ingress.IngressHandler(self.dispatcher.enqueue)
        self.watcher = watcher.Watcher(h_log.LogExceptions(handler),
                                       self.tg)
        self.watcher.add(handler.get_watch_path())

    def start(self):
        LOG.info("Service '%s' starting", self.__class__.__name__)
        super(IngressControllerService, self).start()

        # Pool members can't be built before the nodes are known.
        self.reconciler.nodes.initialize()
        LOG.info("Load balancer VIP subnet CIDR is %s",
                 self.reconciler.subnet_cidr)

        self.tg.add_thread(self.dispatcher.run)
        self.tg.add_timer_args(
            CONF.ingress.node_sync_period, self.reconciler.nodes.sync,
            initial_delay=CONF.ingress.node_sync_period,
            stop_on_exception=False)
        self.watcher.start()
        LOG.info("Service '%s' started", self.__class__.__name__)

    def wait(self):
        super(IngressControllerService, self).wait()
        LOG.info("Service '%s' stopped", self.__class__.__name__)

    def stop(self, graceful=False):
        LOG.info("Service '%s' stopping", self.__class__.__name__)
        self.watcher.stop()
        self.dispatcher.shut_down()
        super(IngressControllerService, self).stop(graceful)


def start():
    config.init(sys.argv[1:])
    config.setup_logging()
    if not CONF.octavia.subnet_id:
        LOG.critical('[octavia]subnet_id option is required.')
        sys.exit(1)
    clients.setup_clients()
    launcher = service.launch(config.CONF, IngressControllerService())
    launcher.wait()
