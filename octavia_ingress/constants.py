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

K8S_API_BASE = '/api/v1'
K8S_API_NODES = K8S_API_BASE + '/nodes'
K8S_API_NAMESPACES = K8S_API_BASE + '/namespaces'
K8S_API_NETWORKING = '/apis/networking.k8s.io/v1'
K8S_API_INGRESSES = K8S_API_NETWORKING + '/ingresses'
K8S_API_NETWORKING_NAMESPACES = K8S_API_NETWORKING + '/namespaces'

K8S_OBJ_INGRESS = 'Ingress'

K8S_ANNOTATION_INGRESS_CLASS = 'kubernetes.io/ingress.class'

K8S_ANNOTATION_PREFIX = 'octavia.ingress.kubernetes.io'
K8S_ANNOTATION_INTERNAL = K8S_ANNOTATION_PREFIX + '/internal'
K8S_ANNOTATION_KEEP_FLOATING_IP = K8S_ANNOTATION_PREFIX + '/keep-floatingip'
K8S_ANNOTATION_FLOATING_IP = K8S_ANNOTATION_PREFIX + '/floatingip'
K8S_ANNOTATION_SOURCE_RANGES = (K8S_ANNOTATION_PREFIX +
                                '/whitelist-source-range')
K8S_ANNOTATION_TIMEOUT_CLIENT_DATA = (K8S_ANNOTATION_PREFIX +
                                      '/timeout-client-data')
K8S_ANNOTATION_TIMEOUT_MEMBER_CONNECT = (K8S_ANNOTATION_PREFIX +
                                         '/timeout-member-connect')
K8S_ANNOTATION_TIMEOUT_MEMBER_DATA = (K8S_ANNOTATION_PREFIX +
                                      '/timeout-member-data')
K8S_ANNOTATION_TIMEOUT_TCP_INSPECT = (K8S_ANNOTATION_PREFIX +
                                      '/timeout-tcp-inspect')

K8S_LABEL_EXCLUDE_FROM_LB = (
    'node.kubernetes.io/exclude-from-external-load-balancers')
K8S_LABEL_NODE_ROLE_MASTER = 'node-role.kubernetes.io/master'

K8S_NODE_CONDITION_READY = 'Ready'
K8S_NODE_ADDRESS_INTERNAL_IP = 'InternalIP'
K8S_PROVIDER_ID_PATTERN = r'^openstack:///([^/]+)$'

K8S_SECRET_CERT_KEY = 'tls.crt'
K8S_SECRET_PRIVATE_KEY = 'tls.key'

K8S_EVENT_TYPE_NORMAL = 'Normal'
K8S_EVENT_TYPE_WARNING = 'Warning'

INGRESS_CONTROLLER_TAG = 'octavia.ingress.kubernetes.io'
INGRESS_EVENT_COMPONENT = 'octavia-ingress-controller'

# Types of the items put into the work queue.
EVENT_CREATE = 'CREATE'
EVENT_UPDATE = 'UPDATE'
EVENT_DELETE = 'DELETE'

RESOURCE_NAME_TEMPLATE = 'kube_ingress_%s_%s_%s'
BARBICAN_SECRET_NAME_TEMPLATE = 'kube_ingress_%s_%s_%s_%s'
LB_DESCRIPTION_TEMPLATE = ('Kubernetes Ingress %s in namespace %s from '
                           'cluster %s, version: %s')
SG_DESCRIPTION_TEMPLATE = ('Security group created for Ingress %s from '
                           'cluster %s')
FIP_DESCRIPTION_TEMPLATE = ('Floating IP for Kubernetes ingress %s in '
                            'namespace %s from cluster %s')
L7_POLICY_DESCRIPTION = 'Created by kubernetes ingress'

LB_STATUS_ACTIVE = 'ACTIVE'
LB_STATUS_ERROR = 'ERROR'
LB_STATUS_DELETED = 'DELETED'

LISTENER_PROTOCOL_HTTP = 'HTTP'
LISTENER_PROTOCOL_HTTPS = 'TERMINATED_HTTPS'
LISTENER_PORT_HTTP = 80
LISTENER_PORT_HTTPS = 443
LISTENER_DEFAULT_CIDR = '0.0.0.0/0'

POOL_PROTOCOL = 'HTTP'
POOL_LB_ALGORITHM = 'ROUND_ROBIN'

L7_POLICY_ACTION_REDIRECT_TO_POOL = 'REDIRECT_TO_POOL'
L7_RULE_COMPARE_REGEX = 'REGEX'
L7_RULE_COMPARE_STARTS_WITH = 'STARTS_WITH'

BARBICAN_SECRET_TYPE = 'opaque'
BARBICAN_PAYLOAD_CONTENT_TYPE = 'application/octet-stream'
BARBICAN_PAYLOAD_CONTENT_ENCODING = 'base64'

SG_RULE_PROTOCOL_TCP = 'tcp'
SG_RULE_DIRECTION_INGRESS = 'ingress'
SG_RULE_ETHERTYPE_IPV4 = 'IPv4'
