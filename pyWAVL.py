# WAVL (weak AVL) tree keyed by integers, with subtree sizes for order statistics
# Implementation based on the paper Rank-Balanced Trees by Bernhard Haeupler, Siddhartha Sen and Robert E. Tarjan
# Reference: ACM Transactions on Algorithms 11(4), 2015

import logging

from graphviz import Digraph
from IPython.display import Image, display

logger = logging.getLogger(__name__)

# Failure codes, never a valid rebalancing count

DUPLICATE_KEY = -1
NOT_FOUND = -1

# Rotation orientations

LEFT = 0
RIGHT = 1

# Cost of the terminal rebalancing cases

INSERT_SINGLE_ROTATION = 2
INSERT_DOUBLE_ROTATION = 5
DELETE_SINGLE_ROTATION = 3
DELETE_DOUBLE_ROTATION = 5

class OUT_OF_RANGE(object):
    """
    select() failure marker:
    returned when the requested rank is not in [1, size()], including on an empty tree
    """
    pass

class WAVL(object):

    def __init__(self, validate=False):
        """
        Initializes an empty tree. The root is an external node, and the cached min/max point at it.
        With validate=True every completed insert/delete is followed by checkInvariants().
        """
        self.root = Node()
        self.minNode = self.root
        self.maxNode = self.root
        self.validate = validate

    def isEmpty(self):
        return not self.root.isInternal()

    def size(self):
        return self.root.size

    def getRoot(self):
        """
        Returns the root node, or None if the tree is empty.
        """
        if self.isEmpty():
            return None
        return self.root

    def search(self, key):
        """
        Returns the value stored under key, or None if key is not present.
        """
        if key == self.minNode.key:
            return self.minNode.val
        if key == self.maxNode.key:
            return self.maxNode.val
        dnode = self.__getNode(self.root, key)
        return dnode.val if dnode.isInternal() else None

    def insert(self, key, val):
        """
        Inserts key with value val.
        Returns the number of rebalancing operations performed,
        or DUPLICATE_KEY (and leaves the tree untouched) if key is already present.
        """
        tnode = self.__getNode(self.root, key)
        if tnode.isInternal():
            logger.warning("Duplicate key %s, insertion is invalidated.", key)
            return DUPLICATE_KEY

        if self.isEmpty():
            # init root
            self.root = Node(key, val)
            self.minNode = self.root
            self.maxNode = self.root
            self.__afterMutation("insert", key, 0)
            return 0

        # tnode is the external slot the new leaf goes into
        parent = tnode.parent
        leaf = Node(key, val)
        self.__replace(tnode, leaf)

        ops = 0
        oldRank = parent.rank
        parent.updateRank()
        if parent.rank != oldRank:
            ops += 1
        self.__fixSize(parent)
        ops += self.__balanceInsert(parent)

        if key < self.minNode.key:
            self.minNode = leaf
        if key > self.maxNode.key:
            self.maxNode = leaf
        self.__afterMutation("insert", key, ops)
        return ops

    def delete(self, key):
        """
        Deletes the item stored under key.
        Returns the number of rebalancing operations performed,
        or NOT_FOUND (and leaves the tree untouched) if key is not present.
        """
        tnode = self.__getNode(self.root, key)
        if not tnode.isInternal():
            logger.warning("No matching node found for key %s, deletion is invalidated.", key)
            return NOT_FOUND

        # move the cache before tnode leaves the tree
        if tnode is self.minNode:
            self.minNode = self.successor(tnode)
        if tnode is self.maxNode:
            self.maxNode = self.predecessor(tnode)

        vacated = self.__removeFromTree(tnode)
        ops = self.__balanceDelete(vacated)

        if self.isEmpty():
            self.minNode = self.root
            self.maxNode = self.root
        self.__afterMutation("delete", key, ops)
        return ops

    def min(self):
        """
        Returns the value of the smallest key, or None if the tree is empty.
        """
        return self.minNode.val

    def max(self):
        """
        Returns the value of the largest key, or None if the tree is empty.
        """
        return self.maxNode.val

    def select(self, i):
        """
        Returns the value of the i-th smallest key (1-indexed),
        or OUT_OF_RANGE if i is not in [1, size()].
        """
        if self.isEmpty() or i < 1 or i > self.root.size:
            logger.warning("Rank %s is out of range for a tree of size %d.", i, self.root.size)
            return OUT_OF_RANGE
        dnode = self.root
        while True:
            leftSize = dnode.left.size
            if i == leftSize + 1:
                return dnode.val
            elif i <= leftSize:
                dnode = dnode.left
            else:
                i -= leftSize + 1
                dnode = dnode.right

    def keysToArray(self):
        """
        Returns the sorted list of all keys, empty if the tree is empty.
        """
        keys = []
        dnode = self.minNode
        for _ in range(self.root.size):
            keys.append(dnode.key)
            dnode = self.successor(dnode)
        return keys

    def valuesToArray(self):
        """
        Returns the list of all values, sorted by their keys.
        """
        vals = []
        dnode = self.minNode
        for _ in range(self.root.size):
            vals.append(dnode.val)
            dnode = self.successor(dnode)
        return vals

    def successor(self, dnode):
        """
        Returns the in-order next internal node of dnode,
        or an external node if there is none.
        """
        if not dnode.isInternal():
            return Node()
        if dnode.right.isInternal():
            return dnode.right.getMin()
        ddnode = dnode.parent
        while ddnode is not None and dnode is ddnode.right:
            dnode = ddnode
            ddnode = ddnode.parent
        return ddnode if ddnode is not None else Node()

    def predecessor(self, dnode):
        """
        Returns the in-order previous internal node of dnode,
        or an external node if there is none.
        """
        if not dnode.isInternal():
            return Node()
        if dnode.left.isInternal():
            return dnode.left.getMax()
        ddnode = dnode.parent
        while ddnode is not None and dnode is ddnode.left:
            dnode = ddnode
            ddnode = ddnode.parent
        return ddnode if ddnode is not None else Node()

    def checkInvariants(self):
        """
        Walks the whole tree asserting parent links, key order, the WAVL rank rule,
        subtree sizes and the cached min/max. Returns True if all of them hold.
        """
        assert self.root.parent is None, "root has a parent"
        if self.isEmpty():
            assert self.root.size == 0
            assert self.minNode is self.root and self.maxNode is self.root, "stale min/max on an empty tree"
            return True

        def checkNode(dnode, low, high):
            # returns the first and last internal nodes of the subtree, in order
            assert (low is None or dnode.key > low) and (high is None or dnode.key < high), \
                "key %s out of order" % dnode.key
            for child in (dnode.left, dnode.right):
                assert child.parent is dnode, "broken parent link under %s" % dnode.key
                assert dnode.rank - child.rank in (1, 2), \
                    "rank difference %d under %s" % (dnode.rank - child.rank, dnode.key)
                if not child.isInternal():
                    assert child.size == 0 and child.rank == -1
            if dnode.isLeaf():
                assert dnode.rank == 0, "leaf %s has rank %d" % (dnode.key, dnode.rank)
            assert dnode.size == 1 + dnode.left.size + dnode.right.size, "wrong size at %s" % dnode.key

            first = last = dnode
            if dnode.left.isInternal():
                first, _ = checkNode(dnode.left, low, dnode.key)
            if dnode.right.isInternal():
                _, last = checkNode(dnode.right, dnode.key, high)
            return first, last

        first, last = checkNode(self.root, None, None)
        assert self.minNode is first, "cached min is %s, expected %s" % (self.minNode.key, first.key)
        assert self.maxNode is last, "cached max is %s, expected %s" % (self.maxNode.key, last.key)
        return True

    def print(self):
        """
        Prints the underlying tree in a nice way.
        """
        self.__prettyPrintTree(self.root)

    def __str__(self):
        """
        Returns string representation of the tree.
        """
        return strTree(self.root)

    def __afterMutation(self, op, key, ops):
        logger.debug("%s %s: %d rebalancing operations", op, key, ops)
        if self.validate:
            self.checkInvariants()

    def __getNode(self, droot, dkey):
        """
        if dkey presents, return the node,
        otherwise, return the external node where dkey would be inserted
        """
        dnode = droot
        while dnode.isInternal() and dnode.key != dkey:
            dnode = dnode.left if dkey < dnode.key else dnode.right
        return dnode

    def __replace(self, dnode, substitute):
        """
        hang substitute where dnode used to be, under dnode's parent
        """
        p = dnode.parent
        if p is None:
            self.root = substitute
        elif p.left is dnode:
            p.left = substitute
        else:
            p.right = substitute
        substitute.parent = p

    def __fixSize(self, dnode):
        """
        fix the size properties from dnode back to ROOT
        """
        while dnode is not None:
            dnode.resize()
            dnode = dnode.parent

    def __balanceInsert(self, dnode):
        """
        climb from dnode promoting parents while they are 0,1,
        then repair a remaining 0,2 parent with a single or double rotation
        return the number of rebalancing operations
        """
        ops = 0
        while dnode.parent is not None:
            p = dnode.parent
            if p.rank != dnode.rank:
                # not a 0-child, rank rule holds again
                return ops
            if p.rank - dnode.sibling().rank == 1:
                p.rank += 1
                ops += 1
                dnode = p
            else:
                return ops + self.__rotateInsert(dnode)
        return ops

    def __rotateInsert(self, dnode):
        """
        dnode is a 0-child whose sibling is a 2-child:
        determine the type of rotation, and do the rotation
        """
        p = dnode.parent
        balance = balanceValue(p)
        if balance > 1 and dnode.rank - dnode.left.rank == 1:
            logger.debug("insert rebalance: LL at %s", p.key)
            self.__rotate(RIGHT, p, dnode)
            p.updateRank()
            return INSERT_SINGLE_ROTATION
        elif balance < -1 and dnode.rank - dnode.right.rank == 1:
            logger.debug("insert rebalance: RR at %s", p.key)
            self.__rotate(LEFT, p, dnode)
            p.updateRank()
            return INSERT_SINGLE_ROTATION
        elif balance > 1:
            logger.debug("insert rebalance: LR at %s", p.key)
            pivot = dnode.right
            self.__rotate(LEFT, dnode, pivot)
            self.__rotate(RIGHT, p, pivot)
        else:
            logger.debug("insert rebalance: RL at %s", p.key)
            pivot = dnode.left
            self.__rotate(RIGHT, dnode, pivot)
            self.__rotate(LEFT, p, pivot)
        # innermost first
        p.updateRank()
        dnode.updateRank()
        pivot.updateRank()
        return INSERT_DOUBLE_ROTATION

    def __removeFromTree(self, tnode):
        """
        unlink tnode from the tree and return the node now sitting in the
        physically vacated slot, where delete rebalancing has to start
        """
        if tnode.isLeaf():
            substitute = Node()
        elif not tnode.right.isInternal():
            substitute = tnode.left
        elif not tnode.left.isInternal():
            substitute = tnode.right
        else:
            # 2 children: move the successor (or predecessor) into tnode's slot
            snode = self.successor(tnode)
            if not snode.isInternal():
                snode = self.predecessor(tnode)
            vacated = self.__removeFromTree(snode)  # recursive, only once
            self.__replace(tnode, snode)
            snode.left = tnode.left
            snode.left.parent = snode
            snode.right = tnode.right
            snode.right.parent = snode
            snode.rank = tnode.rank
            snode.size = tnode.size
            return vacated

        self.__replace(tnode, substitute)
        self.__fixSize(substitute.parent)
        return substitute

    def __balanceDelete(self, dnode):
        """
        climb from the vacated slot demoting ranks until the rank rule holds,
        or until one single or double rotation finishes the job
        return the number of rebalancing operations
        """
        ops = 0
        parent = dnode.parent
        while parent is not None:
            sibling = dnode.sibling()
            done = False
            if parent.isLeaf() and parent.rank == 1:
                # 2,2 leaf
                parent.rank -= 1
                ops += 1
            else:
                gap = parent.rank - dnode.rank
                siblingGap = parent.rank - sibling.rank
                if gap != 3:
                    break
                if siblingGap == 2:
                    parent.rank -= 1
                    ops += 1
                elif siblingGap == 1:
                    if sibling is parent.right:
                        nearGap = sibling.rank - sibling.left.rank
                        farGap = sibling.rank - sibling.right.rank
                    else:
                        nearGap = sibling.rank - sibling.right.rank
                        farGap = sibling.rank - sibling.left.rank
                    if nearGap == 2 and farGap == 2:
                        parent.rank -= 1
                        sibling.rank -= 1
                        ops += 2
                    elif farGap == 1:
                        self.__rotateDeleteSingle(parent, sibling)
                        ops += DELETE_SINGLE_ROTATION
                        done = True
                    else:
                        self.__rotateDeleteDouble(parent, sibling)
                        ops += DELETE_DOUBLE_ROTATION
                        done = True
                else:
                    break

            dnode.resize()
            sibling.resize()
            parent.resize()
            if done:
                break
            dnode = parent
            parent = dnode.parent
        return ops

    def __rotateDeleteSingle(self, parent, sibling):
        logger.debug("delete rebalance: single rotation at %s", parent.key)
        self.__rotate(LEFT if sibling is parent.right else RIGHT, parent, sibling)
        # twice for parent: the first may only collapse a 3,3 node by one
        parent.updateRank()
        sibling.updateRank()
        parent.updateRank()

    def __rotateDeleteDouble(self, parent, sibling):
        logger.debug("delete rebalance: double rotation at %s", parent.key)
        if sibling is parent.right:
            pivot = sibling.left
            self.__rotate(RIGHT, sibling, pivot)
            self.__rotate(LEFT, parent, pivot)
        else:
            pivot = sibling.right
            self.__rotate(LEFT, sibling, pivot)
            self.__rotate(RIGHT, parent, pivot)
        parent.rank -= 2
        sibling.updateRank()
        pivot.rank += 2

    def __rotate(self, orientation, pnode, pivot):
        """
        base type
        lift pivot over its parent pnode, return pivot
        LEFT: pivot is pnode's right child, RIGHT: pivot is pnode's left child
        """
        # pivot takes pnode's place under the grandparent (or becomes ROOT)
        self.__replace(pnode, pivot)
        if orientation == LEFT:
            inner = pivot.left
            pnode.right = inner
            pivot.left = pnode
        else:
            inner = pivot.right
            pnode.left = inner
            pivot.right = pnode
        inner.parent = pnode
        pnode.parent = pivot

        # fix sizes here, lower node first
        pnode.resize()
        pivot.resize()
        return pivot

    def __buildGraph(self, G, node, color=None):
        G.node(str(node.key), "%s: %s\nrank %d, size %d" % (node.key, node.val, node.rank, node.size))
        if color is not None:
            G.edge(str(node.parent.key), str(node.key), color=color)
        if node.left.isInternal():
            G = self.__buildGraph(G, node.left, color='blue')
        if node.right.isInternal():
            G = self.__buildGraph(G, node.right, color='red')
        return G

    def __prettyPrintTree(self, root):
        if not root.isInternal():
            print("Tree is empty!")
        else:
            G = Digraph(format='png')
            G = self.__buildGraph(G, root)
            display(Image(G.render()))

class Node(object):
    def __init__(self, key=None, val=None):
        self.key = key  # int, None means this is an external node
        self.val = val
        self.parent = None  # None means this node is the root node

        if key is None:
            # external node: rank -1, size 0, no children
            self.rank = -1
            self.size = 0
            self.left = None
            self.right = None
        else:
            # new leaf, both children external
            self.rank = 0
            self.size = 1
            self.left = Node()
            self.left.parent = self
            self.right = Node()
            self.right.parent = self

    def isInternal(self):
        return self.rank != -1

    def isLeaf(self):
        return self.isInternal() and not self.left.isInternal() and not self.right.isInternal()

    def sibling(self):
        """
        the other child of this node's parent, None at the root
        """
        if self.parent is None:
            return None
        if self is self.parent.left:
            return self.parent.right
        return self.parent.left

    def updateRank(self):
        """
        recompute the rank from the children;
        a 3,3 node (only seen while deleting) is demoted by one instead
        """
        if self.rank - self.left.rank == 3 and self.rank - self.right.rank == 3:
            self.rank -= 1
        else:
            self.rank = max(self.left.rank, self.right.rank) + 1

    def resize(self):
        if self.isInternal():
            self.size = 1 + self.left.size + self.right.size

    def getMin(self):
        dnode = self
        while dnode.left.isInternal():
            dnode = dnode.left
        return dnode

    def getMax(self):
        dnode = self
        while dnode.right.isInternal():
            dnode = dnode.right
        return dnode

    def __repr__(self):
        if not self.isInternal():
            return "Node(external)"
        return "Node(%s, rank=%d, size=%d)" % (self.key, self.rank, self.size)

def balanceValue(dnode):
    """
    left rank minus right rank, positive when left-heavy; 0 for an external node
    """
    if not dnode.isInternal():
        return 0
    return dnode.left.rank - dnode.right.rank

def strTree(droot):
    """
    perform a pretty print, stringified
    """
    stree = ""
    node = droot

    def DFSNode(dnode, dstree):
        if not dnode.isInternal():
            dstree += "·"
            return dstree
        else:
            dstree += "%s:%d" % (dnode.key, dnode.rank)
        if not dnode.isLeaf():
            dstree += "("
            dstree = DFSNode(dnode.left, dstree)
            dstree += ","
            dstree = DFSNode(dnode.right, dstree)
            dstree += ")"
        return dstree

    stree = DFSNode(node, stree)
    return stree
