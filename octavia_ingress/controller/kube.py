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

"""Thin helpers over the Kubernetes API used by the reconciliation."""

import base64

from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants
from octavia_ingress import exceptions as k_exc

LOG = logging.getLogger(__name__)


def _namespaced_path(namespace, collection, name=None):
    path = f'{constants.K8S_API_NAMESPACES}/{namespace}/{collection}'
    if name:
        path = f'{path}/{name}'
    return path


def _ingress_path(namespace, name):
    return (f'{constants.K8S_API_NETWORKING_NAMESPACES}/{namespace}/'
            f'ingresses/{name}')


def list_nodes():
    k8s = clients.get_kubernetes_client()
    return k8s.get(constants.K8S_API_NODES)['items']


def list_ingresses():
    k8s = clients.get_kubernetes_client()
    return k8s.get(constants.K8S_API_INGRESSES)['items']


def get_service_node_port(namespace, backend):
    """Returns the node port the backend service port is exposed on.

    :param backend: RouteBackend referencing the port by name or number
    :raises ServiceNodePortNotFound: the service or its port doesn't exist
                                     or the port isn't exposed on nodes
    """
    k8s = clients.get_kubernetes_client()
    service_key = f'{namespace}/{backend.service}'
    try:
        service = k8s.get(_namespaced_path(namespace, 'services',
                                           backend.service))
    except k_exc.K8sResourceNotFound:
        raise k_exc.ServiceNodePortNotFound(service_key, backend.port)

    for port in service.get('spec', {}).get('ports') or []:
        if backend.port_name:
            matches = port.get('name') == backend.port_name
        else:
            matches = port.get('port') == backend.port_number
        if matches and port.get('nodePort'):
            return port['nodePort']
    raise k_exc.ServiceNodePortNotFound(service_key, backend.port)


def get_tls_secret(namespace, name):
    """Returns the (certificate, key) PEM bytes of a TLS secret."""
    k8s = clients.get_kubernetes_client()
    secret = k8s.get(_namespaced_path(namespace, 'secrets', name))
    data = secret.get('data') or {}
    result = []
    for key in (constants.K8S_SECRET_CERT_KEY,
                constants.K8S_SECRET_PRIVATE_KEY):
        if key not in data:
            raise k_exc.InvalidRouteSpec(
                f"{key} key doesn't exist in the secret {namespace}/{name}")
        result.append(base64.b64decode(data[key]))
    return tuple(result)


def update_ingress_status(route, address):
    """Publishes the load balancer address in the Ingress status.

    :returns: resourceVersion of the updated Ingress
    """
    k8s = clients.get_kubernetes_client()
    status = {'loadBalancer': {'ingress': [{'ip': address}]}}
    ingress = k8s.patch_status(_ingress_path(route.namespace, route.name),
                               status)
    LOG.debug("Ingress %s status updated with address %s", route.key,
              address)
    return ingress['metadata']['resourceVersion']


def record_event(ingress, reason, message,
                 type_=constants.K8S_EVENT_TYPE_NORMAL):
    """Records an Event about the Ingress, failures are only logged."""
    k8s = clients.get_kubernetes_client()
    try:
        k8s.add_event(ingress, reason, message, type_)
    except Exception:
        LOG.warning("Failed to record %s Event %s for Ingress %s/%s",
                    type_, reason,
                    ingress.get('metadata', {}).get('namespace'),
                    ingress.get('metadata', {}).get('name'),
                    exc_info=True)
