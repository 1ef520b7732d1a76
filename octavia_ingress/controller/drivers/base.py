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

from octavia_ingress.controller.drivers import provisioning
from octavia_ingress import exceptions as k_exc


def find_one(kind, resources, **filters):
    """Returns the only resource of the iterable or None if it is empty.

    :raises MultipleResourcesFound: when more than one resource is found.
    """
    resources = list(resources)
    if len(resources) > 1:
        raise k_exc.MultipleResourcesFound(kind, filters, len(resources))
    if resources:
        return resources[0]
    return None


class LoadBalancerChildManager(object):
    """Base class of managers of the resources living in a load balancer.

    Every change of such resource needs the load balancer to go back to
    ACTIVE before anything else gets touched, so all of them share the same
    provisioning status poller.
    """

    def __init__(self, poller=None):
        self._poller = poller or provisioning.ProvisioningStatusPoller()

    def _wait_for_active(self, loadbalancer_id):
        return self._poller.wait_for_active(loadbalancer_id)
