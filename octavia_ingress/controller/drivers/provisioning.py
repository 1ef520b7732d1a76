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

import enum
import time

from openstack import exceptions as os_exc
from oslo_config import cfg
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress import exceptions as k_exc

CONF = cfg.CONF
LOG = logging.getLogger(__name__)


class ProvisioningState(enum.Enum):
    PENDING = 'PENDING'
    ACTIVE = 'ACTIVE'
    ERROR = 'ERROR'
    TIMEOUT = 'TIMEOUT'

    @classmethod
    def from_status(cls, status):
        """Maps an Octavia provisioning_status to the poller state.

        Every PENDING_* status as well as anything unknown keeps the poller
        waiting.
        """
        if status == k_const.LB_STATUS_ACTIVE:
            return cls.ACTIVE
        if status == k_const.LB_STATUS_ERROR:
            return cls.ERROR
        return cls.PENDING


class ProvisioningStatusPoller(object):
    """Blocks until a load balancer reaches a terminal provisioning status.

    Octavia refuses changes of a load balancer or any of its children while
    it's in one of the PENDING_* statuses, so every change needs to be
    preceded and followed by a call to `wait_for_active`. The status is
    checked right away and then every `interval` seconds, at most `steps`
    times in total.
    """

    def __init__(self, interval=None, steps=None):
        if interval is None:
            interval = CONF.octavia.lb_poll_interval
        if steps is None:
            steps = CONF.octavia.lb_poll_steps
        self._interval = interval
        self._steps = steps

    def _poll(self):
        for attempt in range(self._steps):
            if attempt:
                time.sleep(self._interval)
            yield attempt

    def wait_for_active(self, loadbalancer_id):
        """Waits for the load balancer to become ACTIVE.

        :returns: the ACTIVE openstacksdk LoadBalancer
        :raises LoadBalancerProvisioningError: load balancer went to ERROR
        :raises LoadBalancerNotReady: still pending after all the steps
        """
        lbaas = clients.get_loadbalancer_client()

        status = None
        for attempt in self._poll():
            loadbalancer = lbaas.get_load_balancer(loadbalancer_id)
            status = loadbalancer.provisioning_status
            state = ProvisioningState.from_status(status)
            if state is ProvisioningState.ACTIVE:
                LOG.debug("Provisioning complete for loadbalancer %s",
                          loadbalancer_id)
                return loadbalancer
            if state is ProvisioningState.ERROR:
                raise k_exc.LoadBalancerProvisioningError(loadbalancer_id)
            LOG.debug("Provisioning status %(status)s for loadbalancer "
                      "%(lb)s, check %(attempt)d of %(steps)d",
                      {'status': status, 'lb': loadbalancer_id,
                       'attempt': attempt + 1, 'steps': self._steps})

        LOG.warning("Loadbalancer %s did not become ACTIVE, last status %s "
                    "(%s)", loadbalancer_id, status,
                    ProvisioningState.TIMEOUT.value)
        raise k_exc.LoadBalancerNotReady(loadbalancer_id, status)

    def wait_for_deletion(self, loadbalancer_id):
        lbaas = clients.get_loadbalancer_client()

        status = 'PENDING_DELETE'
        for _ in self._poll():
            try:
                loadbalancer = lbaas.get_load_balancer(loadbalancer_id)
            except os_exc.NotFoundException:
                return
            status = loadbalancer.provisioning_status
            if status == k_const.LB_STATUS_DELETED:
                return
            if status == k_const.LB_STATUS_ERROR:
                raise k_exc.LoadBalancerProvisioningError(loadbalancer_id)

        raise k_exc.LoadBalancerNotReady(loadbalancer_id, status)
