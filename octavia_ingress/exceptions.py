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

from octavia_ingress import utils


class K8sClientException(Exception):
    pass


class ResourceNotReady(Exception):
    def __init__(self, resource):
        msg = resource
        if type(resource) == dict:
            if resource.get('metadata', {}).get('name', None):
                res_name = utils.get_res_unique_name(resource)
                kind = resource.get('kind')
                if kind:
                    msg = f'{kind} {res_name}'
                else:
                    msg = res_name
        self.message = "Resource not ready: %r" % msg
        super(ResourceNotReady, self).__init__(self.message)


class LoadBalancerNotReady(ResourceNotReady):
    """The load balancer did not become ACTIVE after all the polling steps."""
    def __init__(self, loadbalancer_id, status):
        self.loadbalancer_id = loadbalancer_id
        self.status = status
        super().__init__(
            'Loadbalancer %s is stuck in %s status for several minutes. This '
            'is unexpected and indicates problem with OpenStack Octavia. '
            'Please contact your OpenStack administrator.' % (
                loadbalancer_id, status))


class LoadBalancerProvisioningError(Exception):
    """The load balancer went to ERROR provisioning status."""
    def __init__(self, loadbalancer_id):
        self.loadbalancer_id = loadbalancer_id
        super().__init__(
            'Loadbalancer %s is in ERROR provisioning status.' %
            loadbalancer_id)


class MultipleResourcesFound(Exception):
    """More than one resource matches a filter that is supposed to be unique.

    Retrying does not help here, the duplicates need to be removed by an
    operator.
    """
    def __init__(self, kind, filters, count):
        self.kind = kind
        self.filters = filters
        super().__init__(
            f'Found {count} {kind} resources matching {filters}, expected '
            f'at most one.')


class InvalidRouteSpec(Exception):
    """The Ingress can't be realized until it is corrected by its owner."""


class NoAvailableNodes(Exception):
    def __init__(self, pool_name):
        super().__init__(
            f'No available nodes to be members of pool {pool_name}.')


class ServiceNodePortNotFound(Exception):
    def __init__(self, service, port):
        super().__init__(
            f'Failed to find node port {port} for service {service}.')


class FloatingIPUnavailable(Exception):
    """Requested floating IP doesn't exist or is bound to another port."""
    def __init__(self, floating_ip, reason):
        self.floating_ip = floating_ip
        super().__init__(
            f'Floating IP {floating_ip} is not available: {reason}')


class K8sResourceNotFound(K8sClientException):
    def __init__(self, resource):
        super(K8sResourceNotFound, self).__init__("Resource not "
                                                  "found: %r" % resource)


class K8sConflict(K8sClientException):
    def __init__(self, message):
        super(K8sConflict, self).__init__("Conflict: %r" % message)


class K8sForbidden(K8sClientException):
    def __init__(self, message):
        super(K8sForbidden, self).__init__("Forbidden: %r" % message)


class K8sNamespaceTerminating(K8sForbidden):
    # This is raised when K8s complains about operation failing because
    # namespace is being terminated.
    def __init__(self, message):
        super(K8sNamespaceTerminating, self).__init__(
            "Namespace already terminated: %r" % message)


# Errors that will fail the same way until the Ingress or the cloud is fixed
# by someone else, so there is no point in retrying them.
PERMANENT_ERRORS = (MultipleResourcesFound, InvalidRouteSpec)


def format_msg(exception):
    return "%s: %s" % (exception.__class__.__name__, exception)
